"""Core aggregation engine for the late fee calculator.

This module walks every installment of a loan, runs the accrual calculator for
the unpaid ones and collects the results into a ``Breakdown``: the per
installment fees, their total and the "representative" days overdue shown as
the loan's current lateness. It also holds the helpers used when a loan is
created (per-installment principal base, initial installment states) and when
paid installments have to be inferred from principal payments.

Rounding is per entry, then summed: every entry's fee is already rounded to
cents by the accrual calculator and the total is rounded once more after
summation.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Set

from .accrual import accrue, days_overdue, validate_config
from .data_models import AccrualEntry, Breakdown, InstallmentState, LoanAccrualConfig
from .exceptions import ComputationOverflowError, ConfigurationError, DataInconsistencyError
from .schedule import due_date as resolve_due_date
from .utils import ZERO, round_money, sum_money, today_in


def derive_principal_base(config: LoanAccrualConfig) -> Decimal:
    """Return the principal portion of each installment.

    Flat interest loans charge ``principal_amount * interest_rate / 100`` of
    interest on every installment, so when both the installment amount and the
    rate are known the principal portion is what remains of the installment.
    Otherwise the principal is split evenly across the term.
    """
    validate_config(config)
    if config.monthly_payment and config.interest_rate is not None:
        fixed_interest = config.principal_amount * config.interest_rate / Decimal(100)
        principal = config.monthly_payment - fixed_interest
        if principal <= 0:
            raise ConfigurationError(
                f"Installment amount {config.monthly_payment} does not cover the fixed "
                f"interest of {round_money(fixed_interest)}"
            )
        return round_money(principal)
    return round_money(config.principal_amount / Decimal(config.term_count))


def build_installments(
    config: LoanAccrualConfig,
    paid: Iterable[int] = (),
    with_due_dates: bool = False,
) -> List[InstallmentState]:
    """Create the installment states of a newly originated loan.

    ``paid`` lists installment indices already settled. When
    ``with_due_dates`` is set the resolved due dates are stored on the
    states, as the persistence layer does when it writes the schedule.
    """
    base = derive_principal_base(config)
    paid_set = set(paid)
    unknown = sorted(i for i in paid_set if not 1 <= i <= config.term_count)
    if unknown:
        raise ConfigurationError(f"Paid installment indices out of range: {unknown}")
    return [
        InstallmentState(
            index=i,
            principal_base=base,
            paid=i in paid_set,
            due_date=resolve_due_date(config, i) if with_due_dates else None,
        )
        for i in range(1, config.term_count + 1)
    ]


def paid_installments_from_payments(
    config: LoanAccrualConfig, principal_payments: Iterable[Decimal]
) -> Set[int]:
    """Infer which installments are paid from chronological principal payments.

    The principal paid accumulates across payments; every time the
    accumulated amount covers one installment's principal base the next
    installment (oldest first) counts as paid and its base is consumed.
    """
    base = derive_principal_base(config)
    paid: Set[int] = set()
    accumulated = ZERO
    next_index = 1
    for amount in principal_payments:
        accumulated += Decimal(amount)
        while accumulated >= base and next_index <= config.term_count:
            paid.add(next_index)
            accumulated -= base
            next_index += 1
    return paid


def _ordered_installments(
    config: LoanAccrualConfig, installments: Sequence[InstallmentState]
) -> List[InstallmentState]:
    """Check the installment set against the configuration and sort it."""
    if len(installments) != config.term_count:
        raise DataInconsistencyError(
            f"Loan has {config.term_count} installments configured but "
            f"{len(installments)} were provided"
        )
    ordered = sorted(installments, key=lambda inst: inst.index)
    indices = [inst.index for inst in ordered]
    if indices != list(range(1, config.term_count + 1)):
        raise DataInconsistencyError(
            f"Installment indices must be 1..{config.term_count} without gaps or "
            f"duplicates; got {indices}"
        )
    for inst in ordered:
        if inst.principal_base is None or inst.principal_base < 0:
            raise ConfigurationError(
                f"Installment {inst.index} has an invalid principal base: {inst.principal_base!r}"
            )
    return ordered


def representative_days_overdue(entries: Iterable[AccrualEntry]) -> int:
    """Days overdue of the soonest-due unpaid overdue installment, or 0."""
    overdue = [e.days_overdue for e in entries if not e.paid and e.days_overdue > 0]
    return min(overdue) if overdue else 0


def total_outstanding_fee(entries: Iterable[AccrualEntry]) -> Decimal:
    """Sum of the (already rounded) fees of unpaid entries, rounded to cents."""
    return sum_money(e.late_fee for e in entries if not e.paid)


def build_breakdown(
    config: LoanAccrualConfig,
    installments: Sequence[InstallmentState],
    evaluation_date: Optional[date] = None,
) -> Breakdown:
    """Compute the late fee breakdown of a loan as of ``evaluation_date``.

    Parameters
    ----------
    config: LoanAccrualConfig
        The loan's accrual configuration.
    installments: Sequence[InstallmentState]
        One state per installment, indices ``1..term_count`` in any order.
    evaluation_date: date, optional
        The frozen "today" every installment is evaluated against. When
        omitted it is captured once, here, and reused for every installment.

    Returns
    -------
    Breakdown
        Entries in ascending index order. Paid installments keep their days
        overdue for audit purposes but carry no fee. A loan with accrual
        disabled yields an all-zero breakdown.

    Raises
    ------
    ConfigurationError, DataInconsistencyError
        Before any installment is evaluated; no partial breakdown is returned.
    """
    validate_config(config)
    ordered = _ordered_installments(config, installments)
    if evaluation_date is None:
        evaluation_date = today_in()

    zero_fee = round_money(ZERO)
    entries: List[AccrualEntry] = []
    for inst in ordered:
        due = inst.due_date if inst.due_date is not None else resolve_due_date(config, inst.index)
        if not config.accrual_enabled:
            entries.append(
                AccrualEntry(
                    index=inst.index,
                    due_date=due,
                    days_overdue=0,
                    late_fee=zero_fee,
                    paid=inst.paid,
                    principal_base=inst.principal_base,
                )
            )
            continue
        if inst.paid:
            days = days_overdue(due, evaluation_date, config.grace_period_days)
            fee = zero_fee
        else:
            try:
                days, fee = accrue(config, inst.principal_base, due, evaluation_date)
            except ComputationOverflowError as exc:
                raise ComputationOverflowError(f"Installment {inst.index}: {exc}", index=inst.index) from exc
            if inst.late_fee_paid:
                fee = round_money(max(ZERO, fee - inst.late_fee_paid))
        entries.append(
            AccrualEntry(
                index=inst.index,
                due_date=due,
                days_overdue=days,
                late_fee=fee,
                paid=inst.paid,
                principal_base=inst.principal_base,
            )
        )

    if not config.accrual_enabled:
        return Breakdown(
            entries=tuple(entries),
            total_outstanding_fee=zero_fee,
            representative_days_overdue=0,
            evaluation_date=evaluation_date,
            unapplied_remainder=zero_fee,
        )
    return Breakdown(
        entries=tuple(entries),
        total_outstanding_fee=total_outstanding_fee(entries),
        representative_days_overdue=representative_days_overdue(entries),
        evaluation_date=evaluation_date,
        unapplied_remainder=zero_fee,
    )
