"""Reminder message templates and placeholder substitution"""

import logging
import re
from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, Optional

from installment_ledger.domain.classification import PaymentAssessment
from installment_ledger.domain.models import Customer, MessageTemplates, Payment, Sale


class TemplateField(str, Enum):
    """Placeholders a template may use, written as {name}, {amount}, ..."""

    NAME = "name"
    PRODUCT = "product"
    AMOUNT = "amount"
    DATE = "date"
    DEBT = "debt"
    TOTAL = "total"
    MONTHS = "months"
    DEBT_BLOCK = "debt_block"


DEFAULT_TODAY_TEMPLATE = (
    'Hello, {name}! This is a reminder that the payment for "{product}" is due on {date}. '
    "Amount: {amount}.{debt_block}"
)

DEFAULT_OVERDUE_TEMPLATE = (
    'Hello, {name}! Your payment for "{product}" was due on {date} and is overdue. '
    "Amount: {amount}.{debt_block}\nPlease make the payment as soon as possible."
)

DEBT_BLOCK_TEMPLATE = "\n⚠️ Debt from previous periods: {debt} (months overdue: {months}).\n*Total to pay: {total}*."

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_KNOWN_FIELDS = {f.value for f in TemplateField}


def format_amount(amount: Decimal, currency: str = "₽") -> str:
    """12345.5 → "12 345.50 ₽", 3000 → "3 000 ₽" """
    if amount == amount.to_integral_value():
        text = f"{int(amount):,}"
    else:
        text = f"{amount:,.2f}"
    text = text.replace(",", " ")
    return f"{text} {currency}" if currency else text


def render(template: str, fields: Mapping[TemplateField, str]) -> str:
    """
    Substitute {field} placeholders.

    Known fields without a value become "", unknown tokens are logged and
    dropped, so no placeholder ever reaches the customer.
    """

    def replace(match: re.Match) -> str:
        token = match.group(1)
        if token not in _KNOWN_FIELDS:
            logging.warning("Unknown template placeholder dropped", extra={"placeholder": token})
            return ""
        return fields.get(TemplateField(token)) or ""

    return _PLACEHOLDER.sub(replace, template)


def select_template(templates: Optional[MessageTemplates], assessment: PaymentAssessment) -> str:
    """Custom tenant text when configured, built-in default otherwise"""
    templates = templates or MessageTemplates()
    if assessment.is_overdue:
        return templates.overdue or DEFAULT_OVERDUE_TEMPLATE
    if assessment.is_day_before and templates.upcoming:
        return templates.upcoming
    return templates.today or DEFAULT_TODAY_TEMPLATE


def build_fields(
    customer: Customer,
    sale: Sale,
    payment: Payment,
    assessment: PaymentAssessment,
    currency: str = "₽",
) -> Dict[TemplateField, str]:
    fields = {
        TemplateField.NAME: customer.name,
        TemplateField.PRODUCT: sale.product_name,
        TemplateField.AMOUNT: format_amount(payment.amount, currency),
        TemplateField.DATE: payment.due_date.strftime("%d.%m.%Y"),
        TemplateField.DEBT: format_amount(assessment.prior_debt, currency),
        TemplateField.TOTAL: format_amount(assessment.total_to_pay, currency),
        TemplateField.MONTHS: str(assessment.months_overdue),
    }
    fields[TemplateField.DEBT_BLOCK] = render(DEBT_BLOCK_TEMPLATE, fields) if assessment.prior_debt > 0 else ""
    return fields


def render_reminder(
    templates: Optional[MessageTemplates],
    customer: Customer,
    sale: Sale,
    payment: Payment,
    assessment: PaymentAssessment,
    currency: str = "₽",
) -> str:
    """Pick the template for this obligation and fill it in"""
    template = select_template(templates, assessment)
    return render(template, build_fields(customer, sale, payment, assessment, currency))
