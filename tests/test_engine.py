"""
Tests for the aggregator: per installment breakdowns, totals, the
representative days overdue, disabled accrual and input validation.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from late_fee_calc.data_models import InstallmentState
from late_fee_calc.engine import (
    build_breakdown,
    build_installments,
    derive_principal_base,
    paid_installments_from_payments,
)
from late_fee_calc.exceptions import ComputationOverflowError, ConfigurationError, DataInconsistencyError

from conftest import EVALUATION_DATE


def mark_paid(installments, *indices):
    return [replace(inst, paid=inst.index in indices) for inst in installments]


class TestBuildBreakdown:
    """Test the scenario loan of 10,000 in four monthly installments"""

    def test_scenario_entries(self, scenario_config, scenario_installments):
        result = build_breakdown(scenario_config, scenario_installments, EVALUATION_DATE)

        assert [e.index for e in result.entries] == [1, 2, 3, 4]
        assert [e.due_date for e in result.entries] == [
            date(2024, 2, 5),
            date(2024, 3, 5),
            date(2024, 4, 5),
            date(2024, 5, 5),
        ]
        assert [e.days_overdue for e in result.entries] == [237, 208, 177, 147]
        assert [e.late_fee for e in result.entries] == [
            Decimal("11850.00"),
            Decimal("10400.00"),
            Decimal("8850.00"),
            Decimal("7350.00"),
        ]
        assert result.total_outstanding_fee == Decimal("38450.00")
        assert result.representative_days_overdue == 147
        assert result.evaluation_date == EVALUATION_DATE
        assert result.unapplied_remainder == 0

    def test_idempotent(self, scenario_config, scenario_installments):
        first = build_breakdown(scenario_config, scenario_installments, EVALUATION_DATE)
        second = build_breakdown(scenario_config, scenario_installments, EVALUATION_DATE)
        assert first == second

    def test_paid_installment_keeps_days_but_no_fee(self, scenario_config, scenario_installments):
        installments = mark_paid(scenario_installments, 1)
        result = build_breakdown(scenario_config, installments, EVALUATION_DATE)

        first = result.entry(1)
        assert first.paid
        assert first.late_fee == 0
        assert first.days_overdue == 237
        assert result.total_outstanding_fee == Decimal("26600.00")

    def test_representative_days_ignore_paid(self, scenario_config, scenario_installments):
        installments = mark_paid(scenario_installments, 4)
        result = build_breakdown(scenario_config, installments, EVALUATION_DATE)
        assert result.representative_days_overdue == 177

    def test_representative_days_zero_when_nothing_overdue(self, scenario_config, scenario_installments):
        result = build_breakdown(scenario_config, scenario_installments, date(2024, 2, 5))
        assert result.representative_days_overdue == 0
        assert result.total_outstanding_fee == 0

    def test_representative_days_with_partly_future_schedule(self, scenario_config, scenario_installments):
        result = build_breakdown(scenario_config, scenario_installments, date(2024, 3, 20))
        assert [e.days_overdue for e in result.entries] == [44, 15, 0, 0]
        assert result.representative_days_overdue == 15

    def test_all_paid(self, scenario_config, scenario_installments):
        installments = mark_paid(scenario_installments, 1, 2, 3, 4)
        result = build_breakdown(scenario_config, installments, EVALUATION_DATE)
        assert result.total_outstanding_fee == 0
        assert result.representative_days_overdue == 0
        assert all(e.late_fee == 0 for e in result.entries)

    def test_cap_enforced_on_every_entry(self, scenario_config, scenario_installments):
        config = replace(scenario_config, max_fee_per_installment=Decimal("8000"))
        result = build_breakdown(config, scenario_installments, EVALUATION_DATE)
        assert all(e.late_fee <= Decimal("8000") for e in result.entries)
        assert result.total_outstanding_fee == Decimal("31350.00")

    def test_rounds_per_entry_then_sums(self, scenario_config):
        config = replace(scenario_config, accrual_rate=Decimal("0.5"), term_count=2)
        installments = [
            InstallmentState(index=1, principal_base=Decimal("1.01"), due_date=date(2024, 2, 5)),
            InstallmentState(index=2, principal_base=Decimal("1.01"), due_date=date(2024, 2, 5)),
        ]
        # each entry is 0.00505 -> 0.01; summing raw first would give 0.0101 -> 0.01
        result = build_breakdown(config, installments, date(2024, 2, 6))
        assert [e.late_fee for e in result.entries] == [Decimal("0.01"), Decimal("0.01")]
        assert result.total_outstanding_fee == Decimal("0.02")

    def test_persisted_due_date_wins(self, scenario_config, scenario_installments):
        installments = list(scenario_installments)
        installments[3] = replace(installments[3], due_date=date(2024, 6, 5))
        result = build_breakdown(scenario_config, installments, EVALUATION_DATE)
        assert result.entry(4).due_date == date(2024, 6, 5)
        assert result.entry(4).days_overdue == 116
        assert result.entry(4).late_fee == Decimal("5800.00")

    def test_late_fee_already_paid_is_deducted(self, scenario_config, scenario_installments):
        installments = list(scenario_installments)
        installments[3] = replace(installments[3], late_fee_paid=Decimal("350"))
        installments[2] = replace(installments[2], late_fee_paid=Decimal("9999"))
        result = build_breakdown(scenario_config, installments, EVALUATION_DATE)
        assert result.entry(4).late_fee == Decimal("7000.00")
        assert result.entry(3).late_fee == Decimal("0.00")

    def test_order_of_input_does_not_matter(self, scenario_config, scenario_installments):
        shuffled = list(reversed(scenario_installments))
        assert build_breakdown(scenario_config, shuffled, EVALUATION_DATE) == build_breakdown(
            scenario_config, scenario_installments, EVALUATION_DATE
        )

    def test_disabled_accrual_is_all_zero(self, scenario_config, scenario_installments):
        config = replace(scenario_config, accrual_enabled=False)
        result = build_breakdown(config, scenario_installments, EVALUATION_DATE)
        assert result.total_outstanding_fee == 0
        assert result.representative_days_overdue == 0
        assert all(e.late_fee == 0 and e.days_overdue == 0 for e in result.entries)
        assert len(result.entries) == 4

    def test_missing_installment(self, scenario_config, scenario_installments):
        with pytest.raises(DataInconsistencyError, match="4 installments"):
            build_breakdown(scenario_config, scenario_installments[:3], EVALUATION_DATE)

    def test_duplicate_installment_index(self, scenario_config, scenario_installments):
        installments = list(scenario_installments)
        installments[3] = replace(installments[3], index=3)
        with pytest.raises(DataInconsistencyError):
            build_breakdown(scenario_config, installments, EVALUATION_DATE)

    def test_invalid_config_fails_before_computing(self, scenario_config, scenario_installments):
        config = replace(scenario_config, accrual_rate=Decimal("-2"))
        with pytest.raises(ConfigurationError):
            build_breakdown(config, scenario_installments, EVALUATION_DATE)

    def test_invalid_config_fails_even_when_disabled(self, scenario_config, scenario_installments):
        config = replace(scenario_config, accrual_enabled=False, payment_frequency="hourly")
        with pytest.raises(ConfigurationError):
            build_breakdown(config, scenario_installments, EVALUATION_DATE)

    def test_weekly_loan(self, scenario_config):
        config = replace(scenario_config, payment_frequency="weekly", anchor_date=date(2024, 9, 1))
        result = build_breakdown(config, build_installments(config), EVALUATION_DATE)
        assert [e.days_overdue for e in result.entries] == [28, 21, 14, 7]
        assert result.representative_days_overdue == 7
        assert result.total_outstanding_fee == Decimal("3500.00")


class TestPrincipalBase:
    def test_even_split(self, scenario_config):
        assert derive_principal_base(scenario_config) == Decimal("2500.00")

    def test_even_split_rounds(self, scenario_config):
        config = replace(scenario_config, term_count=3)
        assert derive_principal_base(config) == Decimal("3333.33")

    def test_flat_interest_loan(self, scenario_config):
        config = replace(scenario_config, monthly_payment=Decimal("3000"), interest_rate=Decimal("5"))
        assert derive_principal_base(config) == Decimal("2500.00")

    def test_installment_not_covering_interest(self, scenario_config):
        config = replace(scenario_config, monthly_payment=Decimal("400"), interest_rate=Decimal("5"))
        with pytest.raises(ConfigurationError):
            derive_principal_base(config)


class TestBuildInstallments:
    def test_builds_one_state_per_installment(self, scenario_config):
        installments = build_installments(scenario_config, paid=[2])
        assert [i.index for i in installments] == [1, 2, 3, 4]
        assert [i.paid for i in installments] == [False, True, False, False]
        assert all(i.due_date is None for i in installments)

    def test_with_due_dates(self, scenario_config):
        installments = build_installments(scenario_config, with_due_dates=True)
        assert installments[-1].due_date == date(2024, 5, 5)

    def test_paid_index_out_of_range(self, scenario_config):
        with pytest.raises(ConfigurationError):
            build_installments(scenario_config, paid=[5])


class TestPaidFromPayments:
    def test_accumulates_principal(self, scenario_config):
        payments = [Decimal("1000"), Decimal("1600"), Decimal("2500"), Decimal("100")]
        assert paid_installments_from_payments(scenario_config, payments) == {1, 2}

    def test_never_exceeds_term(self, scenario_config):
        assert paid_installments_from_payments(scenario_config, [Decimal("50000")]) == {1, 2, 3, 4}

    def test_no_payments(self, scenario_config):
        assert paid_installments_from_payments(scenario_config, []) == set()


class TestOverflowIndex:
    def test_overflow_reports_installment(self, scenario_config):
        config = replace(
            scenario_config,
            term_count=1,
            anchor_date=date(1, 1, 1),
            accrual_rate=Decimal("100"),
            accrual_mode="compound",
        )
        with pytest.raises(ComputationOverflowError) as excinfo:
            build_breakdown(config, build_installments(config), date(9999, 12, 31))
        assert excinfo.value.index == 1
