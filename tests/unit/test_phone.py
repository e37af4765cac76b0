"""Unit tests for phone normalization"""

import pytest

from installment_ledger.domain.exceptions import InvalidPhoneNumberError
from installment_ledger.domain.phone import normalize_phone, to_chat_id


def test_trunk_prefix_replaced_by_country_code():
    assert normalize_phone("8 (999) 123-45-67") == "79991234567"
    assert to_chat_id("8 (999) 123-45-67") == "79991234567@c.us"


def test_local_ten_digit_number_gets_country_code():
    assert to_chat_id("9991234567") == "79991234567@c.us"


def test_international_number_kept():
    assert to_chat_id("+7 999 123 45 67") == "79991234567@c.us"
    assert to_chat_id("+375 29 123 45 67") == "375291234567@c.us"


@pytest.mark.parametrize("phone", ["12345678", "", "+7 (999)", "   "])
def test_short_numbers_rejected(phone):
    with pytest.raises(InvalidPhoneNumberError):
        to_chat_id(phone)


def test_custom_country_settings():
    assert normalize_phone("0501234567", country_code="380", trunk_prefix="0") == "380501234567"
