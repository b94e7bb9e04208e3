import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from scheduling.calendar import parse_time
from scheduling.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_CHARS_RE = re.compile(r"^[\d\s\-\+\(\)]+$")
MAX_AMOUNT = Decimal("100000000")  # Numeric(10, 2)


def is_valid_email(email: str) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.match(email))


def is_valid_phone(phone: str) -> bool:
    # accepts "(555) 123-4567", "+1 555 123 4567", ...
    if not isinstance(phone, str) or not PHONE_CHARS_RE.match(phone):
        return False
    return len(re.sub(r"\D", "", phone)) >= 10


def parse_date_strict(value, field: str = "scheduled_date") -> date:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid {field} (use YYYY-MM-DD)")


def parse_time_strict(value):
    if not isinstance(value, str):
        raise ValidationError("Invalid time format (use HH:MM:SS or HH:MM)")
    return parse_time(value)


def optional_str(data: dict, field: str):
    """Stripped string value of `field`, or None when missing or blank."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


def parse_amount(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("Amount must be a positive number")
    try:
        amount = Decimal(str(value))
        if not amount.is_finite() or amount < 0 or amount >= MAX_AMOUNT:
            raise ValidationError("Amount must be a positive number below 100000000")
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError("Amount must be a positive number")
