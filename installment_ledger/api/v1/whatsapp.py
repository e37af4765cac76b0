"""WhatsApp settings and manual reminder endpoints"""

import logging
from datetime import tzinfo
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from installment_ledger.api.dependencies import get_reminder_timezone, get_request_id, get_whatsapp_client
from installment_ledger.api.v1.schemas import (
    ConnectionStateResponse,
    ReminderRunRequest,
    ReminderRunResponse,
    WhatsAppSettingsSchema,
)
from installment_ledger.domain.exceptions import InvalidSettingsError, MessagingAPIError, PersistenceError
from installment_ledger.domain.models import MessageTemplates, Tenant, WhatsAppSettings
from installment_ledger.infrastructure.clients.whatsapp import WhatsAppClient
from installment_ledger.infrastructure.database.repositories import TenantRepository
from installment_ledger.infrastructure.database.session import get_db
from installment_ledger.reminders.dispatcher import ReminderDispatcher
from installment_ledger.utils.date_utils import local_now

router = APIRouter()


def _load_tenant(db: Session, tenant_id: str) -> Tenant:
    try:
        tenant = TenantRepository(db).get_tenant(tenant_id)
    except InvalidSettingsError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.put("/tenants/{tenant_id}/whatsapp-settings", response_model=WhatsAppSettingsSchema)
def update_whatsapp_settings(
    tenant_id: str,
    request_body: WhatsAppSettingsSchema,
    db: Session = Depends(get_db),
):
    """Replace the tenant's reminder configuration"""
    templates = request_body.templates
    wa_settings = WhatsAppSettings(
        enabled=request_body.enabled,
        id_instance=request_body.id_instance,
        api_token_instance=request_body.api_token_instance,
        reminder_time=request_body.reminder_time,
        reminder_days=request_body.reminder_days,
        templates=MessageTemplates(
            today=templates.today if templates else None,
            overdue=templates.overdue if templates else None,
            upcoming=templates.upcoming if templates else None,
        ),
    )

    if not TenantRepository(db).save_whatsapp_settings(tenant_id, wa_settings):
        raise HTTPException(status_code=404, detail="Tenant not found")
    db.commit()
    return request_body


@router.get("/tenants/{tenant_id}/whatsapp-settings/state", response_model=ConnectionStateResponse)
async def get_connection_state(
    tenant_id: str,
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """Ask Green API whether the tenant's instance is linked to a phone"""
    tenant = _load_tenant(db, tenant_id)
    wa_settings = tenant.whatsapp_settings
    if not wa_settings or not wa_settings.has_credentials():
        raise HTTPException(status_code=409, detail="WhatsApp is not configured")

    try:
        state = await client.get_state(wa_settings.id_instance, wa_settings.api_token_instance)
    except MessagingAPIError as e:
        logging.error(f"WhatsApp state check failed: {e}", extra={"tenant_id": tenant_id})
        raise HTTPException(status_code=503, detail="WhatsApp service unavailable")

    return ConnectionStateResponse(tenant_id=tenant_id, state=state, authorized=state == "authorized")


@router.post("/tenants/{tenant_id}/reminders/run", response_model=ReminderRunResponse)
async def run_tenant_reminders(
    tenant_id: str,
    request_body: ReminderRunRequest,
    request: Request,
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
    tz: Optional[tzinfo] = Depends(get_reminder_timezone),
):
    """
    Run one tenant's reminders now.

    Without force this behaves exactly like the scheduler (nothing happens
    outside the configured minute). Already-reminded obligations are never
    reminded twice on the same day either way.
    """
    tenant = _load_tenant(db, tenant_id)
    dispatcher = ReminderDispatcher(db, client, tz=tz)

    try:
        report = await dispatcher.process_tenant(tenant, local_now(tz), force=request_body.force)
    except PersistenceError as e:
        db.rollback()
        logging.error(f"Reminder run failed: {e}", extra={"request_id": get_request_id(request), "tenant_id": tenant_id})
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return ReminderRunResponse(
        tenant_id=tenant_id,
        processed=report.processed,
        sent=report.sent,
        failed=report.failed,
        skipped=report.skipped,
    )
