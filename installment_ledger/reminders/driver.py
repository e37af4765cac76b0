"""Scheduler entrypoint: one reminder pass over every enabled tenant

Meant to be started every minute by cron / a systemd timer:

    * * * * * installment-reminders
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from installment_ledger.config import settings
from installment_ledger.domain.exceptions import PersistenceError
from installment_ledger.domain.models import Tenant
from installment_ledger.infrastructure.clients.whatsapp import WhatsAppClient
from installment_ledger.infrastructure.database.repositories import TenantRepository
from installment_ledger.infrastructure.database.session import build_engine, build_session_factory, session_scope
from installment_ledger.infrastructure.observability.logging import setup_logging
from installment_ledger.infrastructure.observability.metrics import (
    reminder_run_duration_histogram,
    reminder_run_tenant_failures_counter,
)
from installment_ledger.reminders.dispatcher import MessageSender, ReminderDispatcher, TenantReminderReport
from installment_ledger.utils.date_utils import get_timezone, local_now


@dataclass
class RunSummary:
    """Totals of one scheduler run, for logs only"""

    tenants: int = 0
    failed_tenants: int = 0
    reports: List[TenantReminderReport] = field(default_factory=list)

    @property
    def processed_tenants(self) -> int:
        return sum(1 for r in self.reports if r.processed)

    @property
    def sent(self) -> int:
        return sum(r.sent for r in self.reports)

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self.reports)


async def run_reminders(
    session_factory: sessionmaker,
    sender: MessageSender,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    max_concurrency: int | None = None,
) -> RunSummary:
    """
    Dispatch reminders for all tenants with WhatsApp enabled.

    Each tenant runs in its own session; a failing tenant is logged and does
    not stop the others. Up to max_concurrency tenants run at once. Sessions
    are synchronous and block the event loop, so only the WhatsApp sends of
    different tenants overlap; store queries still run one at a time.

    Raises:
        PersistenceError: The tenant list could not be loaded at all
    """
    now = now or local_now(tz)
    summary = RunSummary()

    with session_scope(session_factory) as db:
        tenants = TenantRepository(db).get_reminder_tenants()
    summary.tenants = len(tenants)
    logging.info(f"Found {len(tenants)} tenants with WhatsApp enabled", extra={"step": "run_start"})

    semaphore = asyncio.Semaphore(max(1, max_concurrency or settings.max_concurrent_tenants))

    async def run_tenant(tenant: Tenant) -> Optional[TenantReminderReport]:
        async with semaphore:
            try:
                with session_scope(session_factory) as db:
                    return await ReminderDispatcher(db, sender, tz=tz).process_tenant(tenant, now)
            except Exception as e:
                reminder_run_tenant_failures_counter.inc()
                logging.exception(f"Reminder processing failed for tenant: {e}", extra={"tenant_id": tenant.id})
                return None

    results = await asyncio.gather(*(run_tenant(t) for t in tenants))

    for report in results:
        if report is None:
            summary.failed_tenants += 1
        else:
            summary.reports.append(report)

    logging.info(
        "Reminder run completed",
        extra={
            "step": "run_complete",
            "tenants": summary.tenants,
            "processed_tenants": summary.processed_tenants,
            "failed_tenants": summary.failed_tenants,
            "sent": summary.sent,
            "failed": summary.failed,
        },
    )
    return summary


def main() -> None:
    """Console entrypoint; exits 1 when the store cannot be reached"""
    setup_logging(settings.log_level)
    engine = build_engine()
    try:
        with reminder_run_duration_histogram.time():
            asyncio.run(
                run_reminders(
                    build_session_factory(engine),
                    WhatsAppClient(),
                    tz=get_timezone(settings.reminder_timezone),
                )
            )
    except PersistenceError as e:
        logging.critical(f"Reminder run aborted, store unreachable: {e}")
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
