"""Phone number normalization for WhatsApp chat ids"""

import re

from installment_ledger.domain.exceptions import InvalidPhoneNumberError

MIN_DIGITS = 10
CHAT_SUFFIX = "@c.us"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str, country_code: str = "7", trunk_prefix: str = "8") -> str:
    """
    Reduce a free-form phone number to international digits.

    "8 (999) 123-45-67" → "79991234567", "9991234567" → "79991234567".

    Raises:
        InvalidPhoneNumberError: Fewer than 10 digits
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) < MIN_DIGITS:
        raise InvalidPhoneNumberError(f"Phone number too short: {phone!r}")

    if digits.startswith(trunk_prefix):
        return country_code + digits[len(trunk_prefix):]
    if len(digits) == MIN_DIGITS:
        return country_code + digits
    return digits


def to_chat_id(phone: str, country_code: str = "7", trunk_prefix: str = "8") -> str:
    return f"{normalize_phone(phone, country_code, trunk_prefix)}{CHAT_SUFFIX}"
