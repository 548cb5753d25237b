"""
Tests for the accrual calculator: days overdue, grace periods, the three
accrual formulas, fee caps, rounding and overflow handling.
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from late_fee_calc.accrual import accrue, days_overdue, normalize_mode, validate_config
from late_fee_calc.exceptions import ComputationOverflowError, ConfigurationError

from conftest import EVALUATION_DATE

P = Decimal("2500.00")


class TestDaysOverdue:
    def test_whole_days_past_due(self):
        assert days_overdue(date(2024, 5, 5), EVALUATION_DATE) == 147

    def test_grace_period_is_subtracted(self):
        assert days_overdue(date(2024, 5, 5), date(2024, 5, 10), grace_period_days=3) == 2

    def test_within_grace_is_zero(self):
        assert days_overdue(date(2024, 5, 5), date(2024, 5, 7), grace_period_days=3) == 0

    def test_before_due_date_is_zero(self):
        assert days_overdue(date(2024, 5, 5), date(2024, 4, 1)) == 0


class TestAccrue:
    """Test the per installment late fee"""

    def test_daily_scenario_last_installment(self, scenario_config):
        assert accrue(scenario_config, P, date(2024, 5, 5), EVALUATION_DATE) == (147, Decimal("7350.00"))

    def test_daily_scenario_first_installment(self, scenario_config):
        assert accrue(scenario_config, P, date(2024, 2, 5), EVALUATION_DATE) == (237, Decimal("11850.00"))

    def test_monthly_stepped_counts_started_blocks(self, scenario_config):
        config = replace(scenario_config, accrual_mode="monthly")
        # 147 days -> 5 blocks of 30 days
        assert accrue(config, P, date(2024, 5, 5), EVALUATION_DATE) == (147, Decimal("250.00"))
        # exactly 30 days is one block, 31 days is two
        assert accrue(config, P, date(2024, 5, 5), date(2024, 6, 4))[1] == Decimal("50.00")
        assert accrue(config, P, date(2024, 5, 5), date(2024, 6, 5))[1] == Decimal("100.00")

    def test_monthly_stepped_alias(self, scenario_config):
        config = replace(scenario_config, accrual_mode="monthly-stepped")
        assert accrue(config, P, date(2024, 5, 5), EVALUATION_DATE)[1] == Decimal("250.00")

    def test_compound(self, scenario_config):
        config = replace(scenario_config, accrual_rate=Decimal("1"), accrual_mode="compound")
        due = date(2024, 5, 5)
        assert accrue(config, Decimal("1000"), due, due + timedelta(days=2)) == (2, Decimal("20.10"))
        assert accrue(config, Decimal("1000"), due, due + timedelta(days=3)) == (3, Decimal("30.30"))

    def test_round_half_up(self, scenario_config):
        config = replace(scenario_config, accrual_rate=Decimal("0.5"))
        # 1.01 * 0.005 * 1 = 0.00505 -> 0.01
        assert accrue(config, Decimal("1.01"), date(2024, 5, 5), date(2024, 5, 6))[1] == Decimal("0.01")
        # 0.5 * 0.005 * 1 = 0.0025 -> 0.00
        assert accrue(config, Decimal("0.50"), date(2024, 5, 5), date(2024, 5, 6))[1] == Decimal("0.00")

    def test_cap_applies(self, scenario_config):
        config = replace(scenario_config, max_fee_per_installment=Decimal("5000"))
        assert accrue(config, P, date(2024, 2, 5), EVALUATION_DATE) == (237, Decimal("5000.00"))

    def test_zero_cap_means_uncapped(self, scenario_config):
        config = replace(scenario_config, max_fee_per_installment=Decimal("0"))
        assert accrue(config, P, date(2024, 2, 5), EVALUATION_DATE)[1] == Decimal("11850.00")

    def test_disabled_accrual_has_no_fee(self, scenario_config):
        config = replace(scenario_config, accrual_enabled=False)
        assert accrue(config, P, date(2024, 2, 5), EVALUATION_DATE) == (237, Decimal("0.00"))

    def test_zero_rate_has_no_fee(self, scenario_config):
        config = replace(scenario_config, accrual_rate=Decimal("0"))
        assert accrue(config, P, date(2024, 2, 5), EVALUATION_DATE)[1] == Decimal("0")

    def test_evaluation_before_due_date(self, scenario_config):
        assert accrue(scenario_config, P, date(2024, 12, 5), EVALUATION_DATE) == (0, Decimal("0"))

    def test_grace_period(self, scenario_config):
        config = replace(scenario_config, grace_period_days=7)
        assert accrue(config, P, date(2024, 5, 5), EVALUATION_DATE) == (140, Decimal("7000.00"))

    def test_negative_rate(self, scenario_config):
        config = replace(scenario_config, accrual_rate=Decimal("-1"))
        with pytest.raises(ConfigurationError, match="Accrual rate"):
            accrue(config, P, date(2024, 5, 5), EVALUATION_DATE)

    def test_negative_principal(self, scenario_config):
        with pytest.raises(ConfigurationError, match="Principal"):
            accrue(scenario_config, Decimal("-1"), date(2024, 5, 5), EVALUATION_DATE)

    def test_unknown_mode(self, scenario_config):
        config = replace(scenario_config, accrual_mode="weekly")
        with pytest.raises(ConfigurationError, match="accrual mode"):
            accrue(config, P, date(2024, 5, 5), EVALUATION_DATE)

    def test_monotonic_in_time(self, scenario_config):
        for mode in ("daily", "compound"):
            config = replace(scenario_config, accrual_mode=mode, accrual_rate=Decimal("0.7"))
            previous = (0, Decimal("0"))
            for offset in range(0, 400, 13):
                current = accrue(config, P, date(2024, 5, 5), date(2024, 5, 5) + timedelta(days=offset))
                assert current[0] >= previous[0]
                assert current[1] >= previous[1]
                previous = current


class TestOverflow:
    """Compound fees that cannot be represented"""

    def overflow_config(self, scenario_config, cap=None):
        return replace(
            scenario_config,
            anchor_date=date(1, 1, 1),
            accrual_rate=Decimal("100"),
            accrual_mode="compound",
            max_fee_per_installment=cap,
        )

    def test_overflow_without_cap_raises(self, scenario_config):
        config = self.overflow_config(scenario_config)
        with pytest.raises(ComputationOverflowError):
            accrue(config, Decimal("1000"), date(1, 1, 1), date(9999, 12, 31))

    def test_overflow_is_clamped_to_cap(self, scenario_config):
        config = self.overflow_config(scenario_config, cap=Decimal("500"))
        days, fee = accrue(config, Decimal("1000"), date(1, 1, 1), date(9999, 12, 31))
        assert fee == Decimal("500.00")
        assert days == (date(9999, 12, 31) - date(1, 1, 1)).days


class TestValidateConfig:
    def test_valid_scenario(self, scenario_config):
        validate_config(scenario_config)

    @pytest.mark.parametrize(
        "changes",
        [
            {"term_count": 0},
            {"payment_frequency": "hourly"},
            {"accrual_rate": Decimal("-0.1")},
            {"accrual_mode": "simple"},
            {"grace_period_days": -1},
            {"max_fee_per_installment": Decimal("-5")},
            {"principal_amount": Decimal("-10000")},
            {"accrual_rate": Decimal("NaN")},
        ],
    )
    def test_invalid_fields(self, scenario_config, changes):
        with pytest.raises(ConfigurationError):
            validate_config(replace(scenario_config, **changes))

    def test_normalize_mode(self):
        assert normalize_mode("Compound") == "compound"
        assert normalize_mode("monthly_stepped") == "monthly"
