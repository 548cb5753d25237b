"""Payment allocator: apply a lump late fee payment oldest-first.

The payment flows down the breakdown like a waterfall. Each unpaid entry with
a fee is settled in full while money remains; the first entry the money cannot
cover is reduced by whatever is left and allocation stops there. Due dates,
days overdue, indices and principal bases are copied from the input entries
untouched: they are historical facts of the evaluation, not of the payment.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from .data_models import AccrualEntry, Breakdown
from .engine import representative_days_overdue, total_outstanding_fee
from .exceptions import InvalidPaymentError, OverpaymentError
from .utils import ZERO, round_money


def _payment_amount(payment_amount) -> Decimal:
    try:
        amount = Decimal(str(payment_amount).replace(",", "").strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidPaymentError(f"Invalid payment amount: {payment_amount!r}") from exc
    if not amount.is_finite():
        raise InvalidPaymentError(f"Invalid payment amount: {payment_amount!r}")
    if amount < 0:
        raise InvalidPaymentError(f"Payment amount must not be negative; got {amount}")
    return round_money(amount)


def allocate(breakdown: Breakdown, payment_amount, reject_overpayment: bool = False) -> Breakdown:
    """Apply ``payment_amount`` to the outstanding fees of ``breakdown``.

    Parameters
    ----------
    breakdown: Breakdown
        A breakdown as produced by ``build_breakdown`` (or a previous
        allocation). It is not modified.
    payment_amount: Decimal
        Non-negative amount, rounded half-up to cents before allocation.
    reject_overpayment: bool
        When set, a payment larger than the total outstanding fee raises
        ``OverpaymentError`` and nothing is allocated. Otherwise the excess is
        returned in ``unapplied_remainder``.

    Returns
    -------
    Breakdown
        A new breakdown with reduced fees, updated paid flags, the new total
        and the unapplied remainder.
    """
    remaining = _payment_amount(payment_amount)
    outstanding_before = total_outstanding_fee(breakdown.entries)
    if reject_overpayment and remaining > outstanding_before:
        raise OverpaymentError(remaining, outstanding_before)

    entries: List[AccrualEntry] = []
    for entry in breakdown.entries:
        if remaining <= 0 or entry.paid or entry.late_fee <= 0:
            entries.append(entry)
            continue
        if remaining >= entry.late_fee:
            remaining -= entry.late_fee
            entries.append(replace(entry, paid=True, late_fee=round_money(ZERO)))
        else:
            entries.append(replace(entry, late_fee=round_money(entry.late_fee - remaining)))
            remaining = ZERO

    return Breakdown(
        entries=tuple(entries),
        total_outstanding_fee=total_outstanding_fee(entries),
        representative_days_overdue=representative_days_overdue(entries),
        evaluation_date=breakdown.evaluation_date,
        unapplied_remainder=round_money(remaining),
    )


def applied_amounts(before: Breakdown, after: Breakdown) -> Dict[int, Decimal]:
    """Return how much of a payment went to each installment.

    Only installments that received money are included. Used by callers to
    record the late fee collected per installment.
    """
    applied: Dict[int, Decimal] = {}
    after_by_index = {e.index: e for e in after.entries}
    for old in before.entries:
        new = after_by_index.get(old.index)
        if new is None:
            continue
        delta = old.late_fee - new.late_fee
        if delta > 0:
            applied[old.index] = round_money(delta)
    return applied


def newly_paid(before: Breakdown, after: Breakdown) -> List[int]:
    """Indices whose fee was settled in full by the allocation."""
    was_paid = {e.index for e in before.entries if e.paid}
    return [e.index for e in after.entries if e.paid and e.index not in was_paid]
