"""Display formatting for currency, numbers and percentages."""
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

Numeric = Union[Decimal, int, float, str, None]


def _parse(value: Numeric) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        num = Decimal(value.strip()) if isinstance(value, str) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return num if num.is_finite() else None


def _trim(text: str) -> str:
    # "1,234.50" -> "1,234.5", "12.00" -> "12"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_number(value: Numeric, digits: int = 2) -> str:
    """Format with thousands separators and at most `digits` decimals."""
    num = _parse(value)
    if num is None:
        return "-"
    return _trim(f"{num:,.{digits}f}")


def format_currency(value: Numeric, digits: int = 2) -> str:
    """Format as USD, e.g. "$1,234.57" or "-$5.00"."""
    num = _parse(value)
    if num is None:
        return "-"
    sign = "-" if num < 0 else ""
    body = f"{abs(num):,.{digits}f}"
    if digits > 2:
        # Keep cents, drop trailing zeros beyond them
        whole, _, frac = body.partition(".")
        frac = frac.rstrip("0").ljust(2, "0")
        body = f"{whole}.{frac}"
    return f"{sign}${body}"


def format_pct(value: Numeric) -> str:
    """Format as a percentage with two decimals, e.g. "12.35%"."""
    num = _parse(value)
    if num is None:
        return "-"
    return f"{num:.2f}%"
