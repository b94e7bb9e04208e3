from decimal import Decimal

import pytest

from scheduling.errors import ValidationError
from utils.validators import optional_str, parse_amount


@pytest.mark.parametrize("raw,expected", [
    (150, Decimal("150.00")),
    ("89.5", Decimal("89.50")),
    ("99999999.99", Decimal("99999999.99")),
    (None, None),
    ("", None),
])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["1e30", "100000000", "-0.01", "NaN", "Infinity", "abc", True, [1]])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_optional_str():
    assert optional_str({"a": "  x "}, "a") == "x"
    assert optional_str({"a": "   "}, "a") is None
    assert optional_str({}, "a") is None
    with pytest.raises(ValidationError) as exc:
        optional_str({"a": 5}, "a")
    assert exc.value.message == "a must be a string"
