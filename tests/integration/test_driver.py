"""Integration tests for the scheduler run over all tenants"""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import (
    REMINDER_NOW,
    TODAY,
    FakeWhatsAppClient,
    add_customer,
    add_sale,
    add_tenant,
    sale_blob,
    stored_sale,
    wa_settings_blob,
)
from installment_ledger.domain.exceptions import PersistenceError
from installment_ledger.reminders import dispatcher as dispatcher_module
from installment_ledger.reminders.driver import run_reminders


def seed_tenant(db, tenant_id: str, phone: str, reminder_time: str = "09:00", **kwargs) -> None:
    add_tenant(db, tenant_id, wa_settings_blob(reminder_days=[0], reminder_time=reminder_time), **kwargs)
    add_customer(db, tenant_id, f"{tenant_id}_c1", f"Customer of {tenant_id}", phone)
    add_sale(db, sale_blob(f"{tenant_id}_s1", tenant_id, f"{tenant_id}_c1", [(TODAY, 1000)]))


async def test_run_covers_every_enabled_tenant(db, session_factory, whatsapp):
    seed_tenant(db, "m1", "89991111111")
    seed_tenant(db, "m2", "89992222222")
    seed_tenant(db, "m3", "89993333333", reminder_time="10:00")
    add_tenant(db, "m4", wa_settings_blob(enabled=False))
    add_tenant(db, "m5")

    summary = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)

    assert summary.tenants == 3
    assert summary.processed_tenants == 2
    assert summary.sent == 2
    assert summary.failed_tenants == 0
    assert sorted(m.chat_id for m in whatsapp.sent) == ["79991111111@c.us", "79992222222@c.us"]
    assert stored_sale(session_factory, "m1_s1")["paymentPlan"][0]["lastNotificationDate"] == "2026-10-19"


async def test_employee_accounts_are_not_tenants(db, session_factory, whatsapp):
    seed_tenant(db, "e1", "89991111111", role="employee")

    summary = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)

    assert summary.tenants == 0
    assert whatsapp.sent == []


async def test_tenant_with_broken_settings_skipped(db, session_factory, whatsapp):
    seed_tenant(db, "m1", "89991111111")
    add_tenant(db, "m2", {"enabled": True, "idInstance": "1", "apiTokenInstance": "t", "reminderDays": ["x"]})

    summary = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)

    assert summary.tenants == 1
    assert summary.sent == 1


async def test_failing_tenant_does_not_stop_others(db, session_factory, whatsapp, monkeypatch):
    seed_tenant(db, "m1", "89991111111")
    seed_tenant(db, "m2", "89992222222")
    original = dispatcher_module.ReminderDispatcher.process_tenant

    async def flaky(self, tenant, now, force=False):
        if tenant.id == "m1":
            raise RuntimeError("boom")
        return await original(self, tenant, now, force)

    monkeypatch.setattr(dispatcher_module.ReminderDispatcher, "process_tenant", flaky)

    summary = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)

    assert summary.failed_tenants == 1
    assert summary.sent == 1
    assert [m.chat_id for m in whatsapp.sent] == ["79992222222@c.us"]


async def test_rerun_same_minute_sends_nothing_new(db, session_factory, whatsapp):
    seed_tenant(db, "m1", "89991111111")

    await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)
    second = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)

    assert second.processed_tenants == 1
    assert second.sent == 0
    assert len(whatsapp.sent) == 1


async def test_next_day_reminds_overdue_again(db, session_factory, whatsapp):
    add_tenant(db, "m1", wa_settings_blob(reminder_days=[0, 1]))
    add_customer(db, "m1", "c1", "Ivan", "89991234567")
    add_sale(db, sale_blob("s1", "m1", "c1", [(TODAY, 1000)]))

    await run_reminders(session_factory, whatsapp, now=REMINDER_NOW)
    await run_reminders(session_factory, whatsapp, now=REMINDER_NOW + timedelta(days=1))

    assert len(whatsapp.sent) == 2
    assert "overdue" in whatsapp.sent[1].message
    assert stored_sale(session_factory, "s1")["paymentPlan"][0]["lastNotificationDate"] == "2026-10-20"


async def test_concurrent_tenants(db, session_factory):
    for i in range(4):
        seed_tenant(db, f"m{i}", f"8999000000{i}")
    whatsapp = FakeWhatsAppClient(delay=0.01)

    summary = await run_reminders(session_factory, whatsapp, now=REMINDER_NOW, max_concurrency=2)

    assert summary.sent == 4
    assert summary.failed_tenants == 0


async def test_unreachable_store_raises(tmp_path, whatsapp):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    try:
        with pytest.raises(PersistenceError):
            await run_reminders(sessionmaker(bind=engine), whatsapp, now=REMINDER_NOW)
    finally:
        engine.dispose()
