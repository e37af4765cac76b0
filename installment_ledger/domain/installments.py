"""Payment plan generation and sale lifecycle for installment sales"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import List, Optional

from installment_ledger.domain.exceptions import PaymentAlreadyPaidError, PaymentNotFoundError
from installment_ledger.domain.models import Payment, RoundingMode, Sale, SaleStatus
from installment_ledger.utils.date_utils import add_months

CENT = Decimal("0.01")
ROUNDING_STEP = Decimal("100")


def to_money(value) -> Decimal:
    """Coerce a number to a Decimal rounded to kopecks"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SaleAmounts:
    """Derived totals for a new installment sale"""

    total_amount: Decimal
    financed_amount: Decimal
    monthly_payment: Decimal


def calculate_sale_amounts(
    price: Decimal,
    down_payment: Decimal = Decimal("0"),
    installments: int = 1,
    rounding: RoundingMode = RoundingMode.NONE,
) -> SaleAmounts:
    """
    Split a sale price into down payment and financed part.

    With rounding UP/DOWN the monthly payment is rounded to a multiple of 100
    and the financed amount (and total) follow from it, so the customer pays
    round numbers.
    """
    price = to_money(price)
    down_payment = to_money(down_payment)
    financed = price - down_payment

    if installments <= 0:
        return SaleAmounts(total_amount=price, financed_amount=financed, monthly_payment=Decimal("0.00"))

    monthly = to_money(financed / installments)

    if rounding is not RoundingMode.NONE and monthly > 0:
        mode = ROUND_CEILING if rounding is RoundingMode.UP else ROUND_FLOOR
        rounded = (monthly / ROUNDING_STEP).to_integral_value(rounding=mode) * ROUNDING_STEP
        if rounded > 0:
            monthly = to_money(rounded)
            financed = monthly * installments
            price = financed + down_payment

    return SaleAmounts(total_amount=price, financed_amount=financed, monthly_payment=monthly)


def generate_payment_plan(
    principal: Decimal,
    installments: int,
    start_date: date,
    interest_rate: Decimal = Decimal("0"),
    payment_day: Optional[int] = None,
    first_payment_date: Optional[date] = None,
    sale_id: str = "sale",
) -> List[Payment]:
    """
    Generate monthly obligations for the financed part of a sale.

    Requirements:
    - Financed total = principal plus flat interest (principal * rate / 100)
    - Equal monthly amounts; the last one absorbs the kopeck remainder so the
      plan sums exactly to the financed total
    - First due date is first_payment_date, or one month after start_date
    - With payment_day every due date sits on that day of month (clamped to
      short months)

    Args:
        principal: Amount left after the down payment
        installments: Number of monthly payments
        start_date: Sale date
        interest_rate: Flat markup in percent
        payment_day: Fixed day of month for due dates
        first_payment_date: Explicit first due date
        sale_id: Prefix for obligation ids

    Returns:
        Chronologically ordered unpaid Payment objects

    Example:
        1000.00 over 3 months → [333.33, 333.33, 333.34]
    """
    if installments <= 0:
        return []

    financed = to_money(Decimal(str(principal)) * (1 + Decimal(str(interest_rate)) / 100))
    if financed <= 0:
        return []

    first_due = first_payment_date or add_months(start_date, 1, payment_day)
    if payment_day is None:
        # Anchor on the unclamped day so Jan 31 keeps landing on month ends
        payment_day = (first_payment_date or start_date).day

    # Work in kopecks so the split is exact
    total_cents = int(financed * 100)
    base_cents, remainder = divmod(total_cents, installments)

    plan = []
    for i in range(installments):
        cents = base_cents + (remainder if i == installments - 1 else 0)
        plan.append(
            Payment(
                id=f"{sale_id}_{i}",
                sale_id=sale_id,
                due_date=add_months(first_due, i, payment_day),
                amount=(Decimal(cents) / 100).quantize(CENT),
            )
        )

    return plan


def create_sale(
    sale_id: str,
    tenant_id: str,
    customer_id: str,
    product_name: str,
    price: Decimal,
    down_payment: Decimal,
    installments: int,
    start_date: date,
    interest_rate: Decimal = Decimal("0"),
    payment_day: Optional[int] = None,
    first_payment_date: Optional[date] = None,
    rounding: RoundingMode = RoundingMode.NONE,
    product_id: Optional[str] = None,
) -> Sale:
    """
    Build an ACTIVE sale with its payment plan.

    price already includes the markup; interest_rate is recorded for
    reporting and is not applied a second time. The plan plus the down
    payment always add up to total_amount.
    """
    amounts = calculate_sale_amounts(price, down_payment, installments, rounding)
    plan = generate_payment_plan(
        amounts.financed_amount,
        installments,
        start_date,
        payment_day=payment_day,
        first_payment_date=first_payment_date,
        sale_id=sale_id,
    )
    anchor_day = payment_day
    if plan and anchor_day is None:
        anchor_day = (first_payment_date or start_date).day

    return Sale(
        id=sale_id,
        tenant_id=tenant_id,
        customer_id=customer_id,
        product_name=product_name,
        product_id=product_id,
        total_amount=amounts.total_amount,
        down_payment=to_money(down_payment),
        remaining_amount=amounts.financed_amount,
        interest_rate=Decimal(str(interest_rate)),
        installments=installments,
        start_date=start_date,
        payment_day=anchor_day,
        status=SaleStatus.ACTIVE if plan else SaleStatus.COMPLETED,
        payment_plan=plan,
    )


def record_payment(sale: Sale, payment_id: str, paid_on: date) -> Payment:
    """Mark an obligation paid; completes the sale once nothing is owed"""
    payment = sale.find_payment(payment_id)
    if payment is None:
        raise PaymentNotFoundError(f"Payment {payment_id} not found in sale {sale.id}")
    if payment.is_paid:
        raise PaymentAlreadyPaidError(f"Payment {payment_id} is already paid")

    payment.is_paid = True
    payment.actual_date = paid_on
    sale.remaining_amount = max(Decimal("0"), to_money(sale.remaining_amount - payment.amount))

    if not sale.unpaid_payments():
        sale.remaining_amount = Decimal("0.00")
        sale.status = SaleStatus.COMPLETED

    return payment


def mark_defaulted(sale: Sale) -> None:
    sale.status = SaleStatus.DEFAULTED
