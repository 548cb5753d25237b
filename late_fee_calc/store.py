"""Persistence layer for loans, installments and late fee history.

The engine itself never touches storage. This module is the collaborator that
feeds it (``fetch_loan_accrual_config``, ``fetch_installments``) and records
what callers decide to keep after a computation: the loan's current late fee
with its evaluation date, a history row, and the paid flags and collected late
fee of installments after an allocation. It defaults to SQLite for local use
but accepts any SQLAlchemy-compatible URL.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    select,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from .allocation import applied_amounts, newly_paid
from .data_models import Breakdown, InstallmentState, LateFeeHistoryEntry, LoanAccrualConfig
from .engine import build_installments
from .exceptions import LoanNotFoundError
from .config import DEFAULT_DATABASE_URL
from .utils import ZERO

Base = declarative_base()


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    principal_amount = Column(Numeric(14, 2), nullable=False)
    term_count = Column(Integer, nullable=False)
    payment_frequency = Column(String(16), nullable=False)
    anchor_date = Column(Date, nullable=False)
    monthly_payment = Column(Numeric(14, 2), nullable=True)
    interest_rate = Column(Numeric(9, 4), nullable=True)
    late_fee_enabled = Column(Boolean, nullable=False, default=True)
    late_fee_rate = Column(Numeric(9, 4), nullable=False, default=0)
    late_fee_calculation_type = Column(String(16), nullable=False, default="daily")
    grace_period_days = Column(Integer, nullable=False, default=0)
    max_late_fee = Column(Numeric(14, 2), nullable=True)
    current_late_fee = Column(Numeric(14, 2), nullable=False, default=0)
    last_late_fee_calculation = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class InstallmentModel(Base):
    __tablename__ = "installments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=True)
    principal_amount = Column(Numeric(14, 2), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    late_fee_paid = Column(Numeric(14, 2), nullable=False, default=0)


class LateFeeHistoryModel(Base):
    __tablename__ = "late_fee_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    calculation_date = Column(Date, nullable=False)
    days_overdue = Column(Integer, nullable=False)
    late_fee_rate = Column(Numeric(9, 4), nullable=False)
    total_late_fee = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


def _dec(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


class LateFeeStore:
    """Database-backed loan store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add_loan(
        self,
        loan_id: str,
        config: LoanAccrualConfig,
        installments: Optional[Sequence[InstallmentState]] = None,
    ) -> None:
        """Store a loan and its installments.

        When ``installments`` is omitted they are created from the
        configuration with their due dates resolved, as at origination.
        """
        if installments is None:
            installments = build_installments(config, with_due_dates=True)
        loan = LoanModel(
            id=loan_id,
            principal_amount=config.principal_amount,
            term_count=config.term_count,
            payment_frequency=config.payment_frequency,
            anchor_date=config.anchor_date,
            monthly_payment=config.monthly_payment,
            interest_rate=config.interest_rate,
            late_fee_enabled=config.accrual_enabled,
            late_fee_rate=config.accrual_rate,
            late_fee_calculation_type=config.accrual_mode,
            grace_period_days=config.grace_period_days,
            max_late_fee=config.max_fee_per_installment,
            current_late_fee=ZERO,
        )
        with self._session_factory() as session:
            session.add(loan)
            for inst in installments:
                session.add(
                    InstallmentModel(
                        loan_id=loan_id,
                        installment_number=inst.index,
                        due_date=inst.due_date,
                        principal_amount=inst.principal_base,
                        is_paid=inst.paid,
                        late_fee_paid=inst.late_fee_paid,
                    )
                )
            session.commit()

    def list_loan_ids(self, accrual_enabled_only: bool = False) -> List[str]:
        query = select(LoanModel.id).order_by(LoanModel.id.asc())
        if accrual_enabled_only:
            query = query.where(LoanModel.late_fee_enabled.is_(True))
        with self._session_factory() as session:
            return list(session.execute(query).scalars())

    def fetch_loan_accrual_config(self, loan_id: str) -> LoanAccrualConfig:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise LoanNotFoundError(loan_id)
            return LoanAccrualConfig(
                principal_amount=_dec(row.principal_amount),
                term_count=row.term_count,
                payment_frequency=row.payment_frequency,
                anchor_date=row.anchor_date,
                accrual_enabled=bool(row.late_fee_enabled),
                accrual_rate=_dec(row.late_fee_rate),
                accrual_mode=row.late_fee_calculation_type,
                grace_period_days=row.grace_period_days,
                max_fee_per_installment=_dec(row.max_late_fee),
                monthly_payment=_dec(row.monthly_payment),
                interest_rate=_dec(row.interest_rate),
            )

    def fetch_installments(self, loan_id: str) -> List[InstallmentState]:
        """Return the loan's installments ordered by installment number."""
        with self._session_factory() as session:
            if session.get(LoanModel, loan_id) is None:
                raise LoanNotFoundError(loan_id)
            rows: Iterable[InstallmentModel] = session.execute(
                select(InstallmentModel)
                .where(InstallmentModel.loan_id == loan_id)
                .order_by(InstallmentModel.installment_number.asc())
            ).scalars()
            return [
                InstallmentState(
                    index=row.installment_number,
                    principal_base=_dec(row.principal_amount),
                    paid=bool(row.is_paid),
                    due_date=row.due_date,
                    late_fee_paid=_dec(row.late_fee_paid) or ZERO,
                )
                for row in rows
            ]

    def fetch_late_fee(self, loan_id: str) -> Dict[str, object]:
        """Return the persisted current late fee and its evaluation date."""
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise LoanNotFoundError(loan_id)
            return {
                "current_late_fee": _dec(row.current_late_fee),
                "last_late_fee_calculation": row.last_late_fee_calculation,
            }

    def save_late_fee(self, loan_id: str, breakdown: Breakdown, evaluation_date: date) -> None:
        """Persist the loan's outstanding late fee and append a history row."""
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise LoanNotFoundError(loan_id)
            row.current_late_fee = breakdown.total_outstanding_fee
            row.last_late_fee_calculation = evaluation_date
            session.add(
                LateFeeHistoryModel(
                    loan_id=loan_id,
                    calculation_date=evaluation_date,
                    days_overdue=breakdown.representative_days_overdue,
                    late_fee_rate=row.late_fee_rate,
                    total_late_fee=breakdown.total_outstanding_fee,
                )
            )
            session.commit()

    def apply_allocation(self, loan_id: str, before: Breakdown, after: Breakdown) -> Dict[int, Decimal]:
        """Record an allocation: collected late fee per installment and paid flags.

        Returns the amount applied to each installment.
        """
        applied = applied_amounts(before, after)
        settled = set(newly_paid(before, after))
        if not applied and not settled:
            return applied
        with self._session_factory() as session:
            rows = session.execute(
                select(InstallmentModel).where(
                    InstallmentModel.loan_id == loan_id,
                    InstallmentModel.installment_number.in_(sorted(set(applied) | settled)),
                )
            ).scalars().all()
            for row in rows:
                amount = applied.get(row.installment_number)
                if amount:
                    row.late_fee_paid = (_dec(row.late_fee_paid) or ZERO) + amount
                if row.installment_number in settled:
                    row.is_paid = True
            session.commit()
        return applied

    def late_fee_history(self, loan_id: str) -> List[LateFeeHistoryEntry]:
        with self._session_factory() as session:
            rows = session.execute(
                select(LateFeeHistoryModel)
                .where(LateFeeHistoryModel.loan_id == loan_id)
                .order_by(LateFeeHistoryModel.id.asc())
            ).scalars()
            return [
                LateFeeHistoryEntry(
                    loan_id=row.loan_id,
                    calculation_date=row.calculation_date,
                    days_overdue=row.days_overdue,
                    late_fee_rate=_dec(row.late_fee_rate),
                    total_late_fee=_dec(row.total_late_fee),
                )
                for row in rows
            ]


def create_store_from_env(url: str | None) -> LateFeeStore:
    return LateFeeStore(url or DEFAULT_DATABASE_URL)
