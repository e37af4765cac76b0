"""Mapping between stored JSON blobs (camelCase, shared with the web app) and domain models"""

from datetime import date, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from installment_ledger.domain.exceptions import InvalidSettingsError
from installment_ledger.domain.models import (
    Customer,
    MessageTemplates,
    Payment,
    Sale,
    SaleStatus,
    WhatsAppSettings,
)
from installment_ledger.utils.date_utils import parse_calendar_date


def _decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def _phone(value: Any) -> str:
    # Spreadsheet imports store numeric cells as JSON numbers
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value or "")


def _json_number(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


def _optional_date(value: Any, tz: Optional[tzinfo]) -> Optional[date]:
    return parse_calendar_date(value, tz) if value else None


def _date_out(value: date, original: Any, tz: Optional[tzinfo]) -> str:
    """Keep the stored string when it still means the same day"""
    if isinstance(original, str) and original:
        try:
            if parse_calendar_date(original, tz) == value:
                return original
        except ValueError:
            pass
    return value.isoformat()


def payment_from_blob(data: Dict[str, Any], sale_id: str, tz: Optional[tzinfo] = None) -> Payment:
    return Payment(
        id=str(data["id"]),
        sale_id=str(data.get("saleId") or sale_id),
        due_date=parse_calendar_date(data["date"], tz),
        amount=_decimal(data.get("amount")),
        is_paid=bool(data.get("isPaid", False)),
        last_notification_date=_optional_date(data.get("lastNotificationDate"), tz),
        actual_date=_optional_date(data.get("actualDate"), tz),
        extra=dict(data),
    )


def payment_to_blob(payment: Payment, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    blob = dict(payment.extra)
    blob.update(
        {
            "id": payment.id,
            "saleId": payment.sale_id,
            "amount": _json_number(payment.amount),
            "date": _date_out(payment.due_date, payment.extra.get("date"), tz),
            "isPaid": payment.is_paid,
        }
    )
    if payment.last_notification_date:
        blob["lastNotificationDate"] = payment.last_notification_date.isoformat()
    if payment.actual_date:
        blob["actualDate"] = _date_out(payment.actual_date, payment.extra.get("actualDate"), tz)
    return blob


def sale_from_blob(data: Dict[str, Any], tenant_id: str, tz: Optional[tzinfo] = None) -> Sale:
    """
    Raises:
        KeyError, ValueError, TypeError: Blob is missing required fields or malformed
    """
    sale_id = str(data["id"])
    payment_day = data.get("paymentDay")
    return Sale(
        id=sale_id,
        tenant_id=str(data.get("userId") or tenant_id),
        customer_id=str(data.get("customerId", "")),
        product_name=data.get("productName", ""),
        product_id=data.get("productId"),
        total_amount=_decimal(data.get("totalAmount")),
        down_payment=_decimal(data.get("downPayment")),
        remaining_amount=_decimal(data.get("remainingAmount")),
        interest_rate=_decimal(data.get("interestRate")),
        installments=int(data.get("installments") or 0),
        start_date=parse_calendar_date(data["startDate"], tz),
        payment_day=int(payment_day) if payment_day not in (None, "") else None,
        status=SaleStatus(data.get("status", SaleStatus.ACTIVE.value)),
        payment_plan=[payment_from_blob(p, sale_id, tz) for p in data.get("paymentPlan") or []],
        extra=dict(data),
    )


def sale_to_blob(sale: Sale, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    blob = dict(sale.extra)
    blob.update(
        {
            "id": sale.id,
            "userId": sale.tenant_id,
            "customerId": sale.customer_id,
            "productName": sale.product_name,
            "totalAmount": _json_number(sale.total_amount),
            "downPayment": _json_number(sale.down_payment),
            "remainingAmount": _json_number(sale.remaining_amount),
            "interestRate": _json_number(sale.interest_rate),
            "installments": sale.installments,
            "startDate": _date_out(sale.start_date, sale.extra.get("startDate"), tz),
            "status": sale.status.value,
            "paymentPlan": [payment_to_blob(p, tz) for p in sale.payment_plan],
        }
    )
    blob.setdefault("type", "INSTALLMENT")
    if sale.payment_day is not None:
        blob["paymentDay"] = sale.payment_day
    if sale.product_id:
        blob["productId"] = sale.product_id
    return blob


def customer_from_blob(data: Dict[str, Any], tenant_id: str) -> Customer:
    return Customer(
        id=str(data["id"]),
        tenant_id=str(data.get("userId") or tenant_id),
        name=data.get("name", ""),
        phone=_phone(data.get("phone")),
        # Only an explicit false opts out; older records lack the flag
        allow_whatsapp_notification=data.get("allowWhatsappNotification") is not False,
        extra=dict(data),
    )


def settings_from_blob(data: Optional[Dict[str, Any]]) -> Optional[WhatsAppSettings]:
    """
    Parse users.whatsapp_settings.

    Raises:
        InvalidSettingsError: Present but malformed
    """
    if not data:
        return None
    try:
        templates = data.get("templates") or {}
        return WhatsAppSettings(
            enabled=bool(data.get("enabled", False)),
            id_instance=str(data.get("idInstance") or ""),
            api_token_instance=str(data.get("apiTokenInstance") or ""),
            reminder_time=str(data.get("reminderTime") or "09:00"),
            reminder_days=[int(d) for d in data.get("reminderDays") or []],
            templates=MessageTemplates(
                today=templates.get("today") or None,
                overdue=templates.get("overdue") or None,
                upcoming=templates.get("upcoming") or None,
            ),
        )
    except (AttributeError, ValueError, TypeError) as e:
        raise InvalidSettingsError(f"Invalid WhatsApp settings: {e}") from e


def settings_to_blob(settings: WhatsAppSettings) -> Dict[str, Any]:
    templates = {
        key: value
        for key, value in (
            ("today", settings.templates.today),
            ("overdue", settings.templates.overdue),
            ("upcoming", settings.templates.upcoming),
        )
        if value
    }
    blob = {
        "enabled": settings.enabled,
        "idInstance": settings.id_instance,
        "apiTokenInstance": settings.api_token_instance,
        "reminderTime": settings.reminder_time,
        "reminderDays": list(settings.reminder_days),
    }
    if templates:
        blob["templates"] = templates
    return blob
