"""
Value Coercion Helpers

Vendor payloads (PropertyRadar, ATTOM, harvested pages) disagree on how they
encode booleans, money and dates. These helpers normalize them.
"""
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

TRUTHY_VALUES = {"1", "yes", "true", "y"}


def is_truthy(value: Any) -> bool:
    """Boolean coercion for inconsistent vendor flags ("1", "Yes", True, 1)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_VALUES
    return False


def to_number(value: Any) -> Optional[float]:
    """
    Safe numeric coercion, stripping $, % and thousands separators.

    Returns:
        Parsed float, or None for empty/unparseable input
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace("$", "").replace(",", "").replace("%", "").strip()
    try:
        return float(cleaned)
    except ValueError:
        return None


def to_int(value: Any) -> Optional[int]:
    """Safe integer coercion (rounds)."""
    number = to_number(value)
    return round(number) if number is not None else None


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse ISO-ish date strings; datetimes are reduced to their date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%Y/%m/%d", "%m-%d-%Y"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def days_since(value: Union[str, date, datetime, None], fallback: int = 90,
               as_of: Optional[date] = None) -> int:
    """
    Whole days between a date and ``as_of`` (today by default).

    Args:
        value: Date or date string
        fallback: Returned when the value cannot be parsed
        as_of: Reference date

    Returns:
        Days elapsed, at least 1
    """
    parsed = parse_date(value)
    if parsed is None:
        return fallback
    reference = as_of or today_utc()
    return max((reference - parsed).days, 1)


def years_between(start: Union[str, date, datetime, None], as_of: date) -> Optional[float]:
    """Fractional years from ``start`` to ``as_of``, one decimal place."""
    parsed = parse_date(start)
    if parsed is None:
        return None
    return round(max((as_of - parsed).days, 0) / 365.25, 1)
