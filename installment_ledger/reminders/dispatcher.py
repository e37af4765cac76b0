"""Per-tenant reminder dispatch: decide, render, send, stamp"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from installment_ledger.config import settings
from installment_ledger.domain.classification import assess
from installment_ledger.domain.exceptions import InvalidPhoneNumberError, InvalidSettingsError, MessagingAPIError
from installment_ledger.domain.models import Customer, Payment, Sale, SaleStatus, Tenant
from installment_ledger.domain.phone import to_chat_id
from installment_ledger.domain.templates import render_reminder
from installment_ledger.infrastructure.database.repositories import CustomerRepository, SaleRepository
from installment_ledger.infrastructure.observability.logging import log_tenant_reminders
from installment_ledger.infrastructure.observability.metrics import record_reminders


class MessageSender(Protocol):
    """Anything that can deliver a WhatsApp text (see WhatsAppClient)"""

    async def send_message(self, id_instance: str, api_token_instance: str, chat_id: str, message: str) -> str: ...


@dataclass
class TenantReminderReport:
    """Outcome of one tenant's pass"""

    tenant_id: str
    processed: bool = False
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class ReminderDispatcher:
    """
    Sends due/overdue reminders for one tenant at a time.

    The lastNotificationDate stamp is the only deduplication: it is written
    right after each successful send, so a rerun on the same day skips every
    obligation already reminded.
    """

    def __init__(
        self,
        db: Session,
        sender: MessageSender,
        tz: Optional[tzinfo] = None,
        send_timeout: float | None = None,
        country_code: str | None = None,
        trunk_prefix: str | None = None,
        currency: str | None = None,
    ):
        self.db = db
        self.sender = sender
        self.sales = SaleRepository(db, tz)
        self.customers = CustomerRepository(db)
        self.send_timeout = send_timeout or settings.whatsapp_timeout_seconds
        self.country_code = country_code or settings.country_code
        self.trunk_prefix = trunk_prefix or settings.trunk_prefix
        self.currency = currency if currency is not None else settings.currency_symbol

    async def process_tenant(self, tenant: Tenant, now: datetime, force: bool = False) -> TenantReminderReport:
        """
        Run one tenant's reminders.

        Flow:
        1. Skip disabled tenants, tenants without credentials, and (unless
           forced) any minute other than the configured reminder time
        2. Load the tenant's sales and customers
        3. For each unpaid, not-yet-reminded obligation of an ACTIVE sale:
           classify, render, send, stamp

        Raises:
            PersistenceError: Sales or customers could not be loaded
        """
        report = TenantReminderReport(tenant_id=tenant.id)
        wa_settings = tenant.whatsapp_settings

        if not wa_settings or not wa_settings.enabled or not wa_settings.has_credentials():
            logging.debug("WhatsApp not configured, skipping", extra={"tenant_id": tenant.id})
            return report

        if not force:
            try:
                if not wa_settings.is_reminder_minute(now):
                    return report
            except InvalidSettingsError as e:
                logging.warning(f"Invalid reminder settings: {e}", extra={"tenant_id": tenant.id})
                return report

        start_time = time.time()
        report.processed = True
        today = now.date()

        sales = self.sales.list_sales(tenant.id)
        customers = self.customers.get_customers_by_id(tenant.id)

        for sale in sales:
            if sale.status is not SaleStatus.ACTIVE:
                continue
            customer = customers.get(sale.customer_id)

            for payment in sale.payment_plan:
                if payment.is_paid or payment.last_notification_date == today:
                    continue
                try:
                    await self._process_payment(tenant, sale, payment, customer, today, report)
                except Exception as e:
                    logging.exception(
                        f"Skipping obligation after unexpected error: {e!r}",
                        extra={"tenant_id": tenant.id, "sale_id": sale.id, "payment_id": payment.id},
                    )
                    report.skipped += 1

        duration_ms = (time.time() - start_time) * 1000
        record_reminders(report.sent, report.failed, report.skipped)
        log_tenant_reminders(tenant.id, report.sent, report.failed, report.skipped, duration_ms)
        return report

    async def _process_payment(
        self,
        tenant: Tenant,
        sale: Sale,
        payment: Payment,
        customer: Optional[Customer],
        today: date,
        report: TenantReminderReport,
    ) -> None:
        wa_settings = tenant.whatsapp_settings
        context = {"tenant_id": tenant.id, "sale_id": sale.id, "payment_id": payment.id}

        assessment = assess(sale, payment, today, wa_settings.reminder_days)
        if not assessment.eligible:
            return

        if customer is None:
            logging.warning("Customer not found for sale, skipping", extra=context)
            report.skipped += 1
            return
        if not customer.allow_whatsapp_notification:
            report.skipped += 1
            return

        try:
            chat_id = to_chat_id(customer.phone, self.country_code, self.trunk_prefix)
        except InvalidPhoneNumberError as e:
            logging.warning(f"Unusable phone number: {e}", extra=context)
            report.skipped += 1
            return

        message = render_reminder(wa_settings.templates, customer, sale, payment, assessment, self.currency)

        try:
            await asyncio.wait_for(
                self.sender.send_message(
                    wa_settings.id_instance,
                    wa_settings.api_token_instance,
                    chat_id,
                    message,
                ),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            logging.error(f"WhatsApp send timed out after {self.send_timeout}s", extra=context)
            report.failed += 1
            return
        except MessagingAPIError as e:
            logging.error(f"WhatsApp send failed: {e}", extra=context)
            report.failed += 1
            return
        except Exception as e:
            logging.exception(f"Unexpected error sending reminder: {e}", extra=context)
            report.failed += 1
            return

        payment.last_notification_date = today
        report.sent += 1
        logging.info(
            "Reminder sent",
            extra={**context, "step": "reminder_sent", "state": assessment.state.value},
        )
        self._stamp(sale, payment, today, context)

    def _stamp(self, sale: Sale, payment: Payment, today: date, context: dict) -> None:
        """Persist the dedup mark immediately; the message is already out"""
        try:
            self.sales.mark_payment_notified(context["tenant_id"], sale.id, payment.id, today)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(f"Failed to persist notification mark, duplicate possible next run: {e}", extra=context)
