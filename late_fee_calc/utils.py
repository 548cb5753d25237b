"""Utility functions for the late fee calculator.

This module provides helpers for parsing user input into Python data types,
for calendar arithmetic on due dates and for rounding money amounts. Dates are
plain ``datetime.date`` values in a fixed civil calendar; no wall-clock time
or DST offsets are ever involved in the arithmetic.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
import calendar
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0")


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date`` object.

    A trailing time component (``2024-05-05T00:00:00``) is ignored, since
    persisted due dates are sometimes stored as timestamps.

    Raises
    ------
    ValueError
        If the string is not a valid ISO date.
    """
    try:
        return date.fromisoformat(value.strip().split("T")[0])
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(dt: date, years: int) -> date:
    """Return a new date ``years`` calendar years after ``dt`` (Feb 29 clamps to Feb 28)."""
    return add_months(dt, years * 12)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round ``amount`` to cents using round-half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    """Sum already-rounded amounts and round the result to cents."""
    return round_money(sum(amounts, ZERO))


def today_in(timezone_name: Optional[str] = None) -> date:
    """Return the current civil date in ``timezone_name`` (local time if None).

    Callers capture this once per computation and pass it down as the
    evaluation date; the engine itself never reads the clock.
    """
    if not timezone_name:
        return date.today()
    return datetime.now(ZoneInfo(timezone_name)).date()
