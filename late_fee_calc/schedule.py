"""Schedule resolver: due dates of a loan's installments.

The due date of installment ``n`` is the anchor date (due date of installment
#1) moved forward by ``n - 1`` payment periods. Day based frequencies add a
fixed number of days; month based frequencies use calendar arithmetic and
clamp to the last valid day of the target month, always counting from the
anchor so that a clamped February does not shorten later months.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List

from .data_models import LoanAccrualConfig, PAYMENT_FREQUENCIES
from .exceptions import ConfigurationError
from .utils import add_months

_DAYS_PER_PERIOD = {"daily": 1, "weekly": 7, "biweekly": 14}
_MONTHS_PER_PERIOD = {"monthly": 1, "quarterly": 3, "yearly": 12}


def check_schedule_terms(config: LoanAccrualConfig) -> None:
    """Raise ``ConfigurationError`` unless term count and frequency are usable."""
    if isinstance(config.term_count, bool) or not isinstance(config.term_count, int):
        raise ConfigurationError(f"Term count must be an integer; got {config.term_count!r}")
    if config.term_count < 1:
        raise ConfigurationError(f"Term count must be positive; got {config.term_count}")
    if config.payment_frequency not in PAYMENT_FREQUENCIES:
        raise ConfigurationError(
            f"Unknown payment frequency {config.payment_frequency!r}; "
            f"expected one of {', '.join(PAYMENT_FREQUENCIES)}"
        )
    if not isinstance(config.anchor_date, date):
        raise ConfigurationError("Anchor date must be a date")


def due_date(config: LoanAccrualConfig, index: int) -> date:
    """Return the due date of installment ``index`` (1-based)."""
    check_schedule_terms(config)
    if isinstance(index, bool) or not isinstance(index, int) or not 1 <= index <= config.term_count:
        raise ConfigurationError(
            f"Installment index {index!r} outside 1..{config.term_count}"
        )
    periods = index - 1
    frequency = config.payment_frequency
    if frequency in _DAYS_PER_PERIOD:
        return config.anchor_date + timedelta(days=periods * _DAYS_PER_PERIOD[frequency])
    return add_months(config.anchor_date, periods * _MONTHS_PER_PERIOD[frequency])


def due_dates(config: LoanAccrualConfig) -> List[date]:
    """Return the due dates of all installments in index order."""
    return [due_date(config, i) for i in range(1, config.term_count + 1)]
