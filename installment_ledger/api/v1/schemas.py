"""Pydantic schemas for API request/response validation"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from installment_ledger.domain.models import RoundingMode, SaleStatus

ALLOWED_REMINDER_DAYS = {-1, 0, 1}


class SaleCreateRequest(BaseModel):
    """Request body for POST /v1/tenants/{tenant_id}/sales"""

    id: Optional[str] = Field(None, min_length=1, description="Client-chosen sale id")
    customer_id: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    product_id: Optional[str] = None
    price: Decimal = Field(..., gt=0, description="Selling price including markup")
    down_payment: Decimal = Field(Decimal("0"), ge=0)
    installments: int = Field(..., ge=0, le=120)
    interest_rate: Decimal = Field(Decimal("0"), ge=0, description="Markup in percent, informational")
    start_date: date
    payment_day: Optional[int] = Field(None, ge=1, le=31)
    first_payment_date: Optional[date] = None
    rounding: RoundingMode = RoundingMode.NONE

    @field_validator("down_payment")
    @classmethod
    def down_payment_below_price(cls, value: Decimal, info: ValidationInfo) -> Decimal:
        price = info.data.get("price")
        if price is not None and value > price:
            raise ValueError("down_payment cannot exceed price")
        return value


class PaymentSchema(BaseModel):
    """Single obligation in a payment plan"""

    id: str
    due_date: date
    amount: Decimal
    is_paid: bool
    last_notification_date: Optional[date] = None


class SaleResponse(BaseModel):
    """Sale with its payment plan"""

    sale_id: str
    customer_id: str
    product_name: str
    status: SaleStatus
    total_amount: Decimal
    down_payment: Decimal
    remaining_amount: Decimal
    payment_plan: List[PaymentSchema]


class PlanItemSchema(PaymentSchema):
    """Obligation classified as of a given day"""

    state: str
    days_until_due: int
    prior_debt: Decimal
    total_to_pay: Decimal


class PlanResponse(BaseModel):
    """Response for GET /v1/tenants/{tenant_id}/sales/{sale_id}/plan"""

    sale_id: str
    status: SaleStatus
    as_of: date
    overdue_amount: Decimal
    installments: List[PlanItemSchema]


class PayRequest(BaseModel):
    """Request body for marking an obligation paid"""

    paid_on: Optional[date] = None


class MessageTemplatesSchema(BaseModel):
    today: Optional[str] = None
    overdue: Optional[str] = None
    upcoming: Optional[str] = None


class WhatsAppSettingsSchema(BaseModel):
    """Tenant WhatsApp settings, same shape the web app stores"""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    id_instance: str = Field("", alias="idInstance")
    api_token_instance: str = Field("", alias="apiTokenInstance")
    reminder_time: str = Field("09:00", alias="reminderTime", pattern=r"^([01]?\d|2[0-3]):[0-5]\d$")
    reminder_days: List[int] = Field(default_factory=lambda: [0], alias="reminderDays")
    templates: Optional[MessageTemplatesSchema] = None

    @field_validator("reminder_days")
    @classmethod
    def known_offsets(cls, value: List[int]) -> List[int]:
        unknown = set(value) - ALLOWED_REMINDER_DAYS
        if unknown:
            raise ValueError(f"Unsupported reminder day offsets: {sorted(unknown)}")
        return sorted(set(value))


class ConnectionStateResponse(BaseModel):
    """Response for GET /v1/tenants/{tenant_id}/whatsapp-settings/state"""

    tenant_id: str
    state: str
    authorized: bool


class ReminderRunRequest(BaseModel):
    """Request body for a manual reminder run"""

    force: bool = Field(False, description="Ignore the configured reminder time")


class ReminderRunResponse(BaseModel):
    """Outcome of a manual reminder run"""

    tenant_id: str
    processed: bool
    sent: int
    failed: int
    skipped: int
