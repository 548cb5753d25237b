"""Accrual calculator: days overdue and late fee of a single installment.

Three accrual formulas are supported, with ``P`` the installment's principal
base, ``r`` the accrual rate as a fraction and ``d`` the days overdue after
the grace period:

    daily:     fee = P * r * d
    monthly:   fee = P * r * ceil(d / 30)
    compound:  fee = P * ((1 + r)^d - 1)

The result is capped by ``max_fee_per_installment`` (when positive) and then
rounded half-up to cents. Everything is done in ``Decimal``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, Overflow
from typing import Optional, Tuple

from .data_models import ACCRUAL_MODES, LoanAccrualConfig
from .exceptions import ComputationOverflowError, ConfigurationError
from .schedule import check_schedule_terms
from .utils import ZERO, round_money

DAYS_PER_MONTH_STEP = 30

_MODE_ALIASES = {"monthly-stepped": "monthly", "monthly_stepped": "monthly"}


def normalize_mode(mode: str) -> str:
    """Return the canonical accrual mode name, or raise ``ConfigurationError``."""
    canonical = _MODE_ALIASES.get(str(mode).lower(), str(mode).lower())
    if canonical not in ACCRUAL_MODES:
        raise ConfigurationError(
            f"Unknown accrual mode {mode!r}; expected one of {', '.join(ACCRUAL_MODES)}"
        )
    return canonical


def _check_amount(name: str, value: Optional[Decimal], allow_none: bool = False) -> None:
    if value is None:
        if allow_none:
            return
        raise ConfigurationError(f"{name} is required")
    if not isinstance(value, (Decimal, int)) or isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a Decimal; got {value!r}")
    if isinstance(value, Decimal) and not value.is_finite():
        raise ConfigurationError(f"{name} must be finite; got {value}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative; got {value}")


def validate_config(config: LoanAccrualConfig) -> None:
    """Check every field the engine relies on.

    Raises ``ConfigurationError`` on the first problem found. Nothing is
    defaulted: a bad configuration must be fixed by the caller.
    """
    check_schedule_terms(config)
    _check_amount("Principal amount", config.principal_amount)
    _check_amount("Accrual rate", config.accrual_rate)
    _check_amount("Max fee per installment", config.max_fee_per_installment, allow_none=True)
    _check_amount("Monthly payment", config.monthly_payment, allow_none=True)
    _check_amount("Interest rate", config.interest_rate, allow_none=True)
    normalize_mode(config.accrual_mode)
    grace = config.grace_period_days
    if isinstance(grace, bool) or not isinstance(grace, int) or grace < 0:
        raise ConfigurationError(f"Grace period must be a non-negative integer; got {grace!r}")


def days_overdue(due: date, evaluation_date: date, grace_period_days: int = 0) -> int:
    """Whole days past ``due`` less the grace period, never negative."""
    raw_days = (evaluation_date - due).days
    return max(0, raw_days - grace_period_days)


def _raw_fee(mode: str, principal: Decimal, rate: Decimal, days: int) -> Decimal:
    if mode == "daily":
        return principal * rate * days
    if mode == "monthly":
        months_overdue = -(-days // DAYS_PER_MONTH_STEP)
        return principal * rate * months_overdue
    # compound
    return principal * ((1 + rate) ** days - 1)


def accrue(
    config: LoanAccrualConfig,
    entry_principal: Decimal,
    due_date: date,
    evaluation_date: date,
) -> Tuple[int, Decimal]:
    """Return ``(days_overdue, late_fee)`` for one installment.

    An evaluation date before the due date is not an error; it yields zero
    days overdue and no fee.

    Raises
    ------
    ConfigurationError
        For a negative rate or principal, or an unknown accrual mode.
    ComputationOverflowError
        If a compound fee overflows and the loan has no cap to clamp it to.
    """
    _check_amount("Accrual rate", config.accrual_rate)
    _check_amount("Principal", entry_principal)
    mode = normalize_mode(config.accrual_mode)

    days = days_overdue(due_date, evaluation_date, config.grace_period_days)
    if days == 0 or not config.accrual_enabled or config.accrual_rate == 0:
        return days, round_money(ZERO)

    rate = Decimal(config.accrual_rate) / Decimal(100)
    cap = config.fee_cap
    try:
        fee = _raw_fee(mode, Decimal(entry_principal), rate, days)
        if cap is not None:
            fee = min(fee, cap)
        return days, round_money(fee)
    except (Overflow, InvalidOperation) as exc:
        # Quantizing a finite but huge amount also lands here.
        if cap is None:
            raise ComputationOverflowError(
                f"Late fee for installment due {due_date.isoformat()} overflowed "
                f"after {days} days in {mode} mode"
            ) from exc
        return days, round_money(cap)
