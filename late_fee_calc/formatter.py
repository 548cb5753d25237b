"""Output helpers for the late fee calculator.

This module provides simple functions to render due date schedules and late
fee breakdowns in a tabular text format, using only built-in printing and
string formatting.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .data_models import Breakdown


def print_due_dates(dates: Iterable[date]) -> None:
    """Print installment numbers and their due dates."""
    print("Installment\tDue date")
    for i, due in enumerate(dates, start=1):
        print(f"{i}\t{due.isoformat()}")


def print_breakdown(breakdown: Breakdown, show_paid: bool = True) -> None:
    """Print the per installment breakdown followed by the totals.

    Parameters
    ----------
    breakdown: Breakdown
        The breakdown to print.
    show_paid: bool
        Whether to include paid installments. They never carry a fee but
        their days overdue are kept for audit.
    """
    headers = ["Inst", "Due", "Principal", "Days", "LateFee", "Paid"]
    print("\t".join(headers))
    for entry in breakdown.entries:
        if entry.paid and not show_paid:
            continue
        row = [
            str(entry.index),
            entry.due_date.isoformat(),
            f"{entry.principal_base:.2f}",
            str(entry.days_overdue),
            f"{entry.late_fee:.2f}",
            "Yes" if entry.paid else "No",
        ]
        print("\t".join(row))
    print("-" * 72)
    if breakdown.evaluation_date is not None:
        print(f"Evaluated as of     : {breakdown.evaluation_date.isoformat()}")
    print(f"Days overdue        : {breakdown.representative_days_overdue}")
    print(f"Outstanding late fee: {breakdown.total_outstanding_fee:.2f}")
    if breakdown.unapplied_remainder:
        print(f"Unapplied remainder : {breakdown.unapplied_remainder:.2f}")
    print("-" * 72)


def print_allocation(applied: Dict[int, Decimal], before: Breakdown, after: Breakdown) -> None:
    """Print how a late fee payment was spread over the installments."""
    print("Allocation")
    print("=" * 72)
    if not applied:
        print("No late fee was outstanding; nothing applied.")
    for index, amount in sorted(applied.items()):
        status = "settled" if after.entry(index).paid else "reduced"
        print(f"Installment {index:<4d} {amount:>15.2f}  {status}")
    print(f"{'Outstanding before':20s} {before.total_outstanding_fee:15.2f}")
    print(f"{'Outstanding after':20s} {after.total_outstanding_fee:15.2f}")
    print("=" * 72)


def breakdown_to_dict(breakdown: Breakdown) -> Dict[str, object]:
    """Convert a breakdown into a JSON-serialisable dictionary.

    Amounts are rendered as strings so that no precision is lost.
    """
    entries: List[Dict[str, object]] = []
    for e in breakdown.entries:
        entries.append(
            {
                "installment": e.index,
                "due_date": e.due_date.isoformat(),
                "principal": str(e.principal_base),
                "days_overdue": e.days_overdue,
                "late_fee": str(e.late_fee),
                "paid": e.paid,
            }
        )
    evaluation: Optional[str] = breakdown.evaluation_date.isoformat() if breakdown.evaluation_date else None
    return {
        "evaluation_date": evaluation,
        "total_outstanding_fee": str(breakdown.total_outstanding_fee),
        "representative_days_overdue": breakdown.representative_days_overdue,
        "unapplied_remainder": str(breakdown.unapplied_remainder),
        "breakdown": entries,
    }
