"""Number rendering conventions shared by snapshots and answers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

_BILLION = Decimal("1e9")


def _to_decimal(value: int | float | str | Decimal | None) -> Decimal | None:
    if value is None:
        return None
    try:
        d = Decimal(str(value).strip().rstrip("%"))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def format_currency(value: int | float | str | Decimal | None, symbol: str = "$") -> str:
    """``1234.5`` → ``$1,234.50``; negatives keep their sign (``-$12.00``)."""
    d = _to_decimal(value)
    if d is None:
        return "n/a"
    sign = "-" if d < 0 else ""
    return f"{sign}{symbol}{abs(d):,.2f}"


def format_percent(value: int | float | str | Decimal | None) -> str:
    """``1.234`` → ``+1.23%``; the value is already a percentage."""
    d = _to_decimal(value)
    if d is None:
        return "n/a"
    sign = "+" if d >= 0 else "-"
    return f"{sign}{abs(d):.2f}%"


def format_ratio_as_percent(value: int | float | str | Decimal | None) -> str:
    """``0.0052`` → ``0.52%`` (unsigned; used for yields reported as fractions)."""
    d = _to_decimal(value)
    if d is None:
        return "n/a"
    return f"{d * 100:.2f}%"


def format_billions(value: int | float | str | Decimal | None, symbol: str = "$") -> str:
    """Market-cap scale numbers: ``2345000000000`` → ``$2,345.00B``."""
    d = _to_decimal(value)
    if d is None:
        return "n/a"
    sign = "-" if d < 0 else ""
    return f"{sign}{symbol}{abs(d) / _BILLION:,.2f}B"
