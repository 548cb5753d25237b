"""Shared fixtures for the late fee calculator tests."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from late_fee_calc.data_models import LoanAccrualConfig
from late_fee_calc.engine import build_installments
from late_fee_calc.logging_config import LOGGER_NAME
from late_fee_calc.store import LateFeeStore

# 10,000 in four monthly installments of 2,500 principal, 2 % daily late fee
EVALUATION_DATE = date(2024, 9, 29)


@pytest.fixture
def scenario_config():
    return LoanAccrualConfig(
        principal_amount=Decimal("10000"),
        term_count=4,
        payment_frequency="monthly",
        anchor_date=date(2024, 2, 5),
        accrual_enabled=True,
        accrual_rate=Decimal("2"),
        accrual_mode="daily",
        grace_period_days=0,
        max_fee_per_installment=Decimal("0"),
    )


@pytest.fixture
def scenario_installments(scenario_config):
    return build_installments(scenario_config)


@pytest.fixture
def store():
    return LateFeeStore("sqlite://")


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
