"""Sales endpoints - create sales, view classified plans, record payments"""

import logging
import uuid
from datetime import date, tzinfo
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from installment_ledger.api.dependencies import get_reminder_timezone, get_request_id
from installment_ledger.api.v1.schemas import (
    PaymentSchema,
    PayRequest,
    PlanItemSchema,
    PlanResponse,
    SaleCreateRequest,
    SaleResponse,
)
from installment_ledger.domain.classification import PaymentState, assess
from installment_ledger.domain.exceptions import ItemConflictError, PaymentAlreadyPaidError, PaymentNotFoundError
from installment_ledger.domain.installments import create_sale, mark_defaulted, record_payment
from installment_ledger.domain.models import Sale
from installment_ledger.infrastructure.database.repositories import SaleRepository, TenantRepository
from installment_ledger.infrastructure.database.session import get_db
from installment_ledger.utils.date_utils import local_now

router = APIRouter()


def _sale_response(sale: Sale) -> SaleResponse:
    return SaleResponse(
        sale_id=sale.id,
        customer_id=sale.customer_id,
        product_name=sale.product_name,
        status=sale.status,
        total_amount=sale.total_amount,
        down_payment=sale.down_payment,
        remaining_amount=sale.remaining_amount,
        payment_plan=[
            PaymentSchema(
                id=p.id,
                due_date=p.due_date,
                amount=p.amount,
                is_paid=p.is_paid,
                last_notification_date=p.last_notification_date,
            )
            for p in sale.payment_plan
        ],
    )


def _load_sale(repo: SaleRepository, tenant_id: str, sale_id: str, for_update: bool = False) -> Sale:
    sale = repo.get_sale(tenant_id, sale_id, for_update=for_update)
    if sale is None:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale


@router.post("/tenants/{tenant_id}/sales", response_model=SaleResponse, status_code=201)
def create_sale_endpoint(
    tenant_id: str,
    request_body: SaleCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    tz: Optional[tzinfo] = Depends(get_reminder_timezone),
):
    """
    Create an installment sale and generate its monthly payment plan.

    installments = 0 records a cash sale: no plan, status COMPLETED.
    """
    if TenantRepository(db).get_tenant(tenant_id) is None:
        raise HTTPException(status_code=404, detail="Tenant not found")

    sale = create_sale(
        sale_id=request_body.id or f"sale_{uuid.uuid4().hex[:12]}",
        tenant_id=tenant_id,
        customer_id=request_body.customer_id,
        product_name=request_body.product_name,
        product_id=request_body.product_id,
        price=request_body.price,
        down_payment=request_body.down_payment,
        installments=request_body.installments,
        start_date=request_body.start_date,
        interest_rate=request_body.interest_rate,
        payment_day=request_body.payment_day,
        first_payment_date=request_body.first_payment_date,
        rounding=request_body.rounding,
    )

    repo = SaleRepository(db, tz)
    try:
        repo.create_sale(sale)
    except ItemConflictError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    db.commit()

    logging.info(
        "Sale created",
        extra={"request_id": get_request_id(request), "tenant_id": tenant_id, "sale_id": sale.id},
    )
    return _sale_response(sale)


@router.get("/tenants/{tenant_id}/sales/{sale_id}/plan", response_model=PlanResponse)
def get_plan(
    tenant_id: str,
    sale_id: str,
    as_of: Optional[date] = Query(None, description="Classify as of this day (default: today)"),
    db: Session = Depends(get_db),
    tz: Optional[tzinfo] = Depends(get_reminder_timezone),
):
    """
    Retrieve a payment plan with every obligation classified.

    Returns:
        Obligations with state (not_yet_due / due_today / overdue), prior
        debt and total to pay
    """
    sale = _load_sale(SaleRepository(db, tz), tenant_id, sale_id)
    today = as_of or local_now(tz).date()

    items = []
    overdue_amount = Decimal("0")
    for payment in sale.payment_plan:
        assessment = assess(sale, payment, today, reminder_days=())
        if not payment.is_paid and assessment.state is PaymentState.OVERDUE:
            overdue_amount += payment.amount
        items.append(
            PlanItemSchema(
                id=payment.id,
                due_date=payment.due_date,
                amount=payment.amount,
                is_paid=payment.is_paid,
                last_notification_date=payment.last_notification_date,
                state=assessment.state.value,
                days_until_due=assessment.diff_days,
                prior_debt=assessment.prior_debt,
                total_to_pay=assessment.total_to_pay,
            )
        )

    return PlanResponse(
        sale_id=sale.id,
        status=sale.status,
        as_of=today,
        overdue_amount=overdue_amount,
        installments=items,
    )


@router.post("/tenants/{tenant_id}/sales/{sale_id}/payments/{payment_id}/pay", response_model=SaleResponse)
def pay_installment(
    tenant_id: str,
    sale_id: str,
    payment_id: str,
    request_body: PayRequest,
    db: Session = Depends(get_db),
    tz: Optional[tzinfo] = Depends(get_reminder_timezone),
):
    """Mark one obligation paid; the sale completes when nothing is left"""
    repo = SaleRepository(db, tz)
    sale = _load_sale(repo, tenant_id, sale_id, for_update=True)

    try:
        record_payment(sale, payment_id, request_body.paid_on or local_now(tz).date())
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PaymentAlreadyPaidError as e:
        raise HTTPException(status_code=409, detail=str(e))

    repo.save_sale(sale)
    db.commit()
    return _sale_response(sale)


@router.post("/tenants/{tenant_id}/sales/{sale_id}/default", response_model=SaleResponse)
def default_sale(
    tenant_id: str,
    sale_id: str,
    db: Session = Depends(get_db),
    tz: Optional[tzinfo] = Depends(get_reminder_timezone),
):
    """Write the sale off as DEFAULTED; no further reminders are sent"""
    repo = SaleRepository(db, tz)
    sale = _load_sale(repo, tenant_id, sale_id, for_update=True)
    mark_defaulted(sale)
    repo.save_sale(sale)
    db.commit()
    return _sale_response(sale)
