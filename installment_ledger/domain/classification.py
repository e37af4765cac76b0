"""Payment state classification - decides which obligations get a reminder today"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable

from installment_ledger.domain.models import Payment, Sale
from installment_ledger.utils.date_utils import month_index

# reminderDays offsets as stored in tenant settings
DAY_BEFORE = -1
DUE_DAY = 0
OVERDUE = 1


class PaymentState(str, Enum):
    """Where an obligation stands relative to "today" """

    NOT_YET_DUE = "not_yet_due"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class PaymentAssessment:
    """Everything the reminder flow needs to know about one obligation"""

    state: PaymentState
    diff_days: int
    eligible: bool
    prior_debt: Decimal
    total_to_pay: Decimal
    months_overdue: int

    @property
    def is_overdue(self) -> bool:
        return self.state is PaymentState.OVERDUE

    @property
    def is_day_before(self) -> bool:
        return self.diff_days == 1


def diff_days(due_date: date, today: date) -> int:
    """Whole days from today until the due date (negative once overdue)"""
    return (due_date - today).days


def classify(due_date: date, today: date) -> PaymentState:
    days = diff_days(due_date, today)
    if days == 0:
        return PaymentState.DUE_TODAY
    if days < 0:
        return PaymentState.OVERDUE
    return PaymentState.NOT_YET_DUE


def is_eligible(due_date: date, today: date, reminder_days: Iterable[int]) -> bool:
    """
    Check the tenant's offsets against this obligation.

    Offsets are asymmetric:
    - 0 fires on the due date
    - -1 fires exactly one day before the due date
    - any positive offset is a blanket "overdue" flag: it fires every day for
      every overdue obligation, however late it is
    """
    offsets = set(reminder_days)
    days = diff_days(due_date, today)

    if days == 0:
        return DUE_DAY in offsets
    if days < 0:
        return any(offset > 0 for offset in offsets)
    return days == 1 and DAY_BEFORE in offsets


def prior_debt(sale: Sale, payment: Payment) -> Decimal:
    """Unpaid amounts of this plan that fell due strictly before payment"""
    return sum(
        (
            p.amount
            for p in sale.payment_plan
            if p is not payment and not p.is_paid and p.due_date < payment.due_date
        ),
        Decimal("0"),
    )


def months_overdue(due_date: date, today: date) -> int:
    """
    Calendar-month distance from the due date to today.

    Counts at least one month when still inside the due month but past the
    due day.
    """
    months = month_index(today) - month_index(due_date)
    if months == 0 and today.day > due_date.day:
        months += 1
    return months


def assess(sale: Sale, payment: Payment, today: date, reminder_days: Iterable[int]) -> PaymentAssessment:
    """Classify one obligation and compute its debt figures"""
    debt = prior_debt(sale, payment)
    return PaymentAssessment(
        state=classify(payment.due_date, today),
        diff_days=diff_days(payment.due_date, today),
        eligible=is_eligible(payment.due_date, today, reminder_days),
        prior_debt=debt,
        total_to_pay=payment.amount + debt,
        months_overdue=months_overdue(payment.due_date, today) if debt > 0 else 0,
    )
