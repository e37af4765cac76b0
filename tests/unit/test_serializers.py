"""Unit tests for blob <-> domain mapping"""

import pytest
from datetime import date
from decimal import Decimal

from installment_ledger.domain.exceptions import InvalidSettingsError
from installment_ledger.domain.models import SaleStatus
from installment_ledger.infrastructure.database.serializers import (
    customer_from_blob,
    sale_from_blob,
    sale_to_blob,
    settings_from_blob,
    settings_to_blob,
)

SALE_BLOB = {
    "id": "s1",
    "userId": "m1",
    "type": "INSTALLMENT",
    "customerId": "c1",
    "productName": "iPhone",
    "buyPrice": 50000,
    "accountId": "acc_main_m1",
    "guarantorName": "Oleg",
    "totalAmount": 78000,
    "downPayment": 10000,
    "remainingAmount": 68000,
    "interestRate": 30,
    "installments": 2,
    "startDate": "2026-01-15T10:00:00.000Z",
    "paymentDay": 15,
    "status": "ACTIVE",
    "paymentPlan": [
        {"id": "p0", "saleId": "s1", "amount": 34000, "date": "2026-02-15T00:00:00.000Z", "isPaid": True},
        {
            "id": "p1",
            "saleId": "s1",
            "amount": 34000.5,
            "date": "2026-03-15",
            "isPaid": False,
            "lastNotificationDate": "2026-03-14",
            "note": "call first",
        },
    ],
}


def test_sale_from_blob():
    sale = sale_from_blob(SALE_BLOB, "m1")

    assert sale.status is SaleStatus.ACTIVE
    assert sale.payment_day == 15
    assert sale.payment_plan[1].amount == Decimal("34000.5")
    assert sale.payment_plan[1].due_date == date(2026, 3, 15)
    assert sale.payment_plan[1].last_notification_date == date(2026, 3, 14)
    assert sale.payment_plan[0].is_paid


def test_sale_to_blob_preserves_unmodelled_fields():
    sale = sale_from_blob(SALE_BLOB, "m1")
    sale.payment_plan[1].last_notification_date = date(2026, 3, 15)
    blob = sale_to_blob(sale)

    assert blob["buyPrice"] == 50000
    assert blob["guarantorName"] == "Oleg"
    assert blob["paymentPlan"][1]["note"] == "call first"
    assert blob["paymentPlan"][1]["lastNotificationDate"] == "2026-03-15"
    assert blob["paymentPlan"][1]["amount"] == 34000.5
    assert blob["paymentPlan"][0]["amount"] == 34000
    assert blob["paymentPlan"][0]["date"] == "2026-02-15T00:00:00.000Z"


def test_sale_from_blob_rejects_unknown_status():
    with pytest.raises(ValueError):
        sale_from_blob({**SALE_BLOB, "status": "ARCHIVED"}, "m1")


def test_customer_opt_out_only_when_explicitly_false():
    assert customer_from_blob({"id": "c1", "name": "A", "phone": "1"}, "m1").allow_whatsapp_notification
    assert not customer_from_blob(
        {"id": "c1", "name": "A", "phone": "1", "allowWhatsappNotification": False}, "m1"
    ).allow_whatsapp_notification


def test_settings_round_trip():
    blob = {
        "enabled": True,
        "idInstance": "1101",
        "apiTokenInstance": "tok",
        "reminderTime": "10:30",
        "reminderDays": [-1, 0, 1],
        "templates": {"today": "T {name}", "overdue": ""},
    }
    wa_settings = settings_from_blob(blob)

    assert wa_settings.has_credentials()
    assert wa_settings.reminder_clock() == (10, 30)
    assert wa_settings.templates.overdue is None
    assert settings_to_blob(wa_settings) == {**blob, "templates": {"today": "T {name}"}}


def test_settings_missing_is_none():
    assert settings_from_blob(None) is None


def test_settings_malformed():
    with pytest.raises(InvalidSettingsError):
        settings_from_blob({"enabled": True, "reminderDays": ["x"]})


@pytest.mark.parametrize("phone,expected", [(89990001122, "89990001122"), (89990001122.0, "89990001122"), (None, "")])
def test_customer_phone_from_numeric_cell(phone, expected):
    assert customer_from_blob({"id": "c1", "name": "A", "phone": phone}, "m1").phone == expected


@pytest.mark.parametrize(
    "payment",
    [
        {"id": "p9", "amount": "1 000", "date": "2026-03-15"},
        {"id": "p9", "amount": 1000, "date": None},
    ],
)
def test_unparseable_payment_raises_value_error(payment):
    with pytest.raises(ValueError):
        sale_from_blob({**SALE_BLOB, "paymentPlan": [payment]}, "m1")
