"""Dependency injection for FastAPI endpoints"""

from datetime import tzinfo
from typing import Optional

from fastapi import Request

from installment_ledger.config import settings
from installment_ledger.infrastructure.clients.whatsapp import WhatsAppClient
from installment_ledger.utils.date_utils import get_timezone


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_whatsapp_client() -> WhatsAppClient:
    """Provide Green API client instance"""
    return WhatsAppClient()


def get_reminder_timezone() -> Optional[tzinfo]:
    """Timezone in which calendar days and reminder times are evaluated"""
    return get_timezone(settings.reminder_timezone)
