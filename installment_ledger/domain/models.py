"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from installment_ledger.domain.exceptions import InvalidSettingsError


class SaleStatus(str, Enum):
    """Lifecycle of an installment sale"""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    DRAFT = "DRAFT"


class RoundingMode(str, Enum):
    """How the monthly installment is rounded (to a multiple of 100)"""

    NONE = "NONE"
    UP = "UP"
    DOWN = "DOWN"


@dataclass
class Payment:
    """Single scheduled obligation in a sale's payment plan"""

    id: str
    sale_id: str
    due_date: date
    amount: Decimal
    is_paid: bool = False
    last_notification_date: Optional[date] = None
    actual_date: Optional[date] = None
    # Stored blob keys the ledger does not model, written back untouched
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class Sale:
    """Installment sale owned by a tenant"""

    id: str
    tenant_id: str
    customer_id: str
    product_name: str
    total_amount: Decimal
    down_payment: Decimal
    remaining_amount: Decimal
    interest_rate: Decimal
    installments: int
    start_date: date
    status: SaleStatus = SaleStatus.ACTIVE
    payment_plan: List[Payment] = field(default_factory=list)
    payment_day: Optional[int] = None
    product_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        return next((p for p in self.payment_plan if p.id == payment_id), None)

    def unpaid_payments(self) -> List[Payment]:
        return [p for p in self.payment_plan if not p.is_paid]


@dataclass
class Customer:
    """Tenant's customer; referenced by sales, never owned by them"""

    id: str
    tenant_id: str
    name: str
    phone: str = ""
    allow_whatsapp_notification: bool = True
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class MessageTemplates:
    """Optional custom reminder texts configured by the tenant"""

    today: Optional[str] = None
    overdue: Optional[str] = None
    upcoming: Optional[str] = None


@dataclass
class WhatsAppSettings:
    """Per-tenant reminder configuration (stored as users.whatsapp_settings)"""

    enabled: bool = False
    id_instance: str = ""
    api_token_instance: str = ""
    reminder_time: str = "09:00"
    reminder_days: List[int] = field(default_factory=lambda: [0])
    templates: MessageTemplates = field(default_factory=MessageTemplates)

    def has_credentials(self) -> bool:
        return bool(self.id_instance and self.api_token_instance)

    def reminder_clock(self) -> Tuple[int, int]:
        """Parse reminder_time "HH:MM" into (hour, minute)"""
        try:
            hour_str, minute_str = self.reminder_time.strip().split(":")
            hour, minute = int(hour_str), int(minute_str)
        except (AttributeError, ValueError) as e:
            raise InvalidSettingsError(f"Invalid reminder time: {self.reminder_time!r}") from e

        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise InvalidSettingsError(f"Reminder time out of range: {self.reminder_time!r}")
        return hour, minute

    def is_reminder_minute(self, now: datetime) -> bool:
        """True when the wall clock is exactly on the configured minute"""
        return self.reminder_clock() == (now.hour, now.minute)


@dataclass
class Tenant:
    """Manager/admin account that owns the settings row"""

    id: str
    role: str
    whatsapp_settings: Optional[WhatsAppSettings] = None
