"""Shared validation utilities"""

from datetime import date, datetime, timezone
from typing import Optional

# Date layouts seen in Kyte exports, tried in order
KYTE_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y",
)


def parse_order_date(value) -> date:
    """
    Parse an order date from a Kyte export.

    Args:
        value: date, datetime or string in one of KYTE_DATE_FORMATS / ISO-8601

    Returns:
        The calendar date of the order

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Order date is required")

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in KYTE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized order date: {value!r}")


def validate_order_number(value: Optional[str]) -> str:
    """Order numbers are trimmed and a leading '#' is dropped ("#1001" -> "1001")"""
    if value is None:
        raise ValueError("Order number is required")
    number = str(value).strip().lstrip("#").strip()
    if not number:
        raise ValueError("Order number is required")
    return number


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
