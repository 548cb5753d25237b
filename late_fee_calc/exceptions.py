"""Exceptions raised by the late fee engine.

All of them derive from ``LateFeeError``, which is a ``ValueError`` so that
callers already handling bad input the usual way keep working.
"""

from decimal import Decimal
from typing import Optional


class LateFeeError(ValueError):
    """Base class for late fee engine errors."""


class ConfigurationError(LateFeeError):
    """The loan configuration or an installment index is invalid."""


class DataInconsistencyError(LateFeeError):
    """Persisted installments do not match the loan configuration."""


class InvalidPaymentError(LateFeeError):
    """A late fee payment amount is negative or not a number."""


class OverpaymentError(LateFeeError):
    """A late fee payment exceeds the total outstanding late fee."""

    def __init__(self, payment: Decimal, outstanding: Decimal) -> None:
        self.payment = payment
        self.outstanding = outstanding
        self.remainder = payment - outstanding
        super().__init__(
            f"Payment {payment:.2f} exceeds outstanding late fee {outstanding:.2f} "
            f"by {self.remainder:.2f}"
        )


class ComputationOverflowError(LateFeeError):
    """A late fee could not be represented as a finite amount."""

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        self.index = index
        super().__init__(message)


class LoanNotFoundError(LookupError):
    """No loan with the requested id is stored."""

    def __init__(self, loan_id: str) -> None:
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id!r} not found")
