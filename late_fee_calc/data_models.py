"""Data models for the late fee calculator.

This module defines dataclasses representing the entities used by the engine:
the per-loan accrual configuration, the state of each installment, the per
installment accrual result and the breakdown that aggregates them. All of them
are frozen: a breakdown is produced fresh on every evaluation and an
allocation returns a new breakdown instead of modifying the one it was given.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

PAYMENT_FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")

# ``monthly`` is the monthly-stepped mode: every started 30 day block counts.
ACCRUAL_MODES = ("daily", "monthly", "compound")


@dataclass(frozen=True)
class LoanAccrualConfig:
    """Late fee configuration of a loan, immutable at evaluation time.

    Attributes
    ----------
    principal_amount: Decimal
        The financed amount of the loan.
    term_count: int
        Number of installments.
    payment_frequency: str
        One of ``PAYMENT_FREQUENCIES``.
    anchor_date: date
        Due date of installment #1. It is fixed at origination and is never
        the mutable "next payment date" of the loan record.
    accrual_rate: Decimal
        Late fee rate in percent per accrual period (per day for ``daily`` and
        ``compound``, per 30 days for ``monthly``).
    max_fee_per_installment: Decimal
        Cap on the fee of a single installment. ``0`` or ``None`` means
        uncapped.
    """

    principal_amount: Decimal
    term_count: int
    payment_frequency: str
    anchor_date: date
    accrual_enabled: bool = True
    accrual_rate: Decimal = Decimal("0")
    accrual_mode: str = "daily"
    grace_period_days: int = 0
    max_fee_per_installment: Optional[Decimal] = None

    # Used to derive the per-installment principal of flat interest loans
    monthly_payment: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None  # percent per installment

    @property
    def fee_cap(self) -> Optional[Decimal]:
        """The effective cap, or ``None`` when the loan is uncapped."""
        if self.max_fee_per_installment is not None and self.max_fee_per_installment > 0:
            return self.max_fee_per_installment
        return None


@dataclass(frozen=True)
class InstallmentState:
    """Persisted state of one installment.

    ``due_date`` is only set when the persistence layer already stores one;
    otherwise the schedule resolver derives it from the loan configuration.
    ``late_fee_paid`` is late fee already collected for this installment.
    """

    index: int
    principal_base: Decimal
    paid: bool = False
    due_date: Optional[date] = None
    late_fee_paid: Decimal = Decimal("0")


@dataclass(frozen=True)
class AccrualEntry:
    """The late fee position of one installment as of an evaluation date."""

    index: int
    due_date: date
    days_overdue: int
    late_fee: Decimal
    paid: bool
    principal_base: Decimal = Decimal("0")


@dataclass(frozen=True)
class Breakdown:
    """Per installment late fees of a loan plus the aggregate figures.

    ``entries`` are kept in ascending index order; the payment allocator
    relies on that order. ``unapplied_remainder`` is only non-zero on a
    breakdown returned by an allocation that received more money than was
    owed.
    """

    entries: Tuple[AccrualEntry, ...]
    total_outstanding_fee: Decimal
    representative_days_overdue: int
    evaluation_date: Optional[date] = None
    unapplied_remainder: Decimal = field(default=Decimal("0"))

    @property
    def outstanding_entries(self) -> Tuple[AccrualEntry, ...]:
        return tuple(e for e in self.entries if not e.paid and e.late_fee > 0)

    def entry(self, index: int) -> AccrualEntry:
        """Return the entry for installment ``index``."""
        for e in self.entries:
            if e.index == index:
                return e
        raise KeyError(index)


@dataclass(frozen=True)
class LateFeeHistoryEntry:
    """A persisted recalculation of a loan's late fee."""

    loan_id: str
    calculation_date: date
    days_overdue: int
    late_fee_rate: Decimal
    total_late_fee: Decimal
