"""Store-backed operations: recalculate late fees and apply late fee payments.

These functions glue the pure engine to a ``LateFeeStore``. Each call
captures the evaluation date once (in the business timezone unless one is
given) and uses it for the whole computation and for what it persists.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from .allocation import allocate
from .config import DEFAULT_TIMEZONE
from .data_models import Breakdown
from .engine import build_breakdown
from .exceptions import OverpaymentError
from .logging_config import get_logger
from .store import LateFeeStore
from .utils import today_in

logger = get_logger(__name__)


def _evaluation_date(evaluation_date: Optional[date], timezone: Optional[str]) -> date:
    if evaluation_date is not None:
        return evaluation_date
    return today_in(timezone or DEFAULT_TIMEZONE)


def compute_loan_breakdown(store: LateFeeStore, loan_id: str, evaluation_date: date) -> Breakdown:
    """Fetch a loan's configuration and installments and build its breakdown."""
    config = store.fetch_loan_accrual_config(loan_id)
    installments = store.fetch_installments(loan_id)
    return build_breakdown(config, installments, evaluation_date)


def recalculate_loan(
    store: LateFeeStore,
    loan_id: str,
    evaluation_date: Optional[date] = None,
    timezone: Optional[str] = None,
) -> Breakdown:
    """Recompute a loan's late fee and persist the total with its evaluation date."""
    as_of = _evaluation_date(evaluation_date, timezone)
    breakdown = compute_loan_breakdown(store, loan_id, as_of)
    store.save_late_fee(loan_id, breakdown, as_of)
    logger.info(
        "Late fee recalculated: %s",
        breakdown.total_outstanding_fee,
        extra={
            "loan_id": loan_id,
            "action": "recalculate",
            "evaluation_date": as_of.isoformat(),
            "extra_data": {"days_overdue": breakdown.representative_days_overdue},
        },
    )
    return breakdown


def recalculate_all(
    store: LateFeeStore,
    evaluation_date: Optional[date] = None,
    timezone: Optional[str] = None,
) -> int:
    """Recompute every loan with late fees enabled; return how many were updated.

    All loans are evaluated against the same date.
    """
    as_of = _evaluation_date(evaluation_date, timezone)
    updated = 0
    for loan_id in store.list_loan_ids(accrual_enabled_only=True):
        recalculate_loan(store, loan_id, as_of)
        updated += 1
    logger.info(
        "Recalculated late fees for %d loans",
        updated,
        extra={"action": "recalculate_all", "evaluation_date": as_of.isoformat()},
    )
    return updated


def pay_late_fee(
    store: LateFeeStore,
    loan_id: str,
    amount: Decimal,
    evaluation_date: Optional[date] = None,
    reject_overpayment: bool = False,
    timezone: Optional[str] = None,
) -> Breakdown:
    """Apply a late fee payment to a stored loan.

    The breakdown is recomputed as of the evaluation date, the payment is
    allocated oldest-first, the collected amounts and settled installments are
    recorded and the new outstanding total is persisted. The returned
    breakdown carries any ``unapplied_remainder``; with ``reject_overpayment``
    an overpayment raises ``OverpaymentError`` and nothing is written.
    """
    as_of = _evaluation_date(evaluation_date, timezone)
    before = compute_loan_breakdown(store, loan_id, as_of)
    try:
        after = allocate(before, amount, reject_overpayment=reject_overpayment)
    except OverpaymentError:
        logger.warning(
            "Late fee payment rejected as overpayment",
            extra={"loan_id": loan_id, "action": "pay_late_fee", "evaluation_date": as_of.isoformat()},
        )
        raise
    applied = store.apply_allocation(loan_id, before, after)
    store.save_late_fee(loan_id, after, as_of)
    logger.info(
        "Late fee payment applied: %s",
        amount,
        extra={
            "loan_id": loan_id,
            "action": "pay_late_fee",
            "evaluation_date": as_of.isoformat(),
            "extra_data": {
                "applied": {str(k): str(v) for k, v in applied.items()},
                "outstanding": str(after.total_outstanding_fee),
            },
        },
    )
    if after.unapplied_remainder > 0:
        logger.warning(
            "Late fee payment exceeds outstanding fee by %s",
            after.unapplied_remainder,
            extra={"loan_id": loan_id, "action": "pay_late_fee"},
        )
    return after
