"""Tests for the budget position arithmetic and the cutoff decision."""

from datetime import date, datetime, time
from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from meal_engines.budget import compute_position, fits_headroom
from meal_engines.cutoff import evaluate_cutoff

THRESHOLD = Decimal("0.20")

money = st.decimals(min_value=0, max_value=1_000_000, places=2, allow_nan=False, allow_infinity=False)


class TestBudgetPosition:
    def test_overdrawn_into_overdraft(self):
        position = compute_position(
            Decimal("1000.00"), Decimal("200.00"), Decimal("1150.00"), THRESHOLD
        )

        assert position.available_budget == Decimal("1200.00")
        assert position.remaining == Decimal("50.00")
        assert position.consumption_percent == Decimal("115.00")
        assert position.is_low_budget is True
        assert position.low_budget_warning == "Low budget: 50.00 remaining (4.2%)"

    def test_healthy_budget_has_no_warning(self):
        position = compute_position(Decimal("1000.00"), Decimal("0.00"), Decimal("250.00"), THRESHOLD)

        assert position.consumption_percent == Decimal("25.00")
        assert position.is_low_budget is False
        assert position.low_budget_warning is None

    def test_zero_budget_consumption_is_zero(self):
        position = compute_position(Decimal("0"), Decimal("0"), Decimal("0"), THRESHOLD)
        assert position.consumption_percent == Decimal("0.00")

    def test_exhausted_budget(self):
        position = compute_position(Decimal("100.00"), Decimal("0.00"), Decimal("100.00"), THRESHOLD)
        assert position.low_budget_warning == "Budget exhausted"

    def test_exact_headroom_fits(self):
        position = compute_position(Decimal("100.00"), Decimal("0.00"), Decimal("50.00"), THRESHOLD)

        assert position.allows(Decimal("50.00")) is True
        assert position.allows(Decimal("50.01")) is False

    @given(budget=money, overdraft=money, spent=money, amount=money)
    def test_fits_iff_within_available(self, budget, overdraft, spent, amount):
        position = compute_position(budget, overdraft, spent, THRESHOLD)
        assert position.allows(amount) == (spent + amount <= budget + overdraft)
        assert fits_headroom(spent, amount, position.available_budget) == position.allows(amount)


class TestCutoffDecision:
    def test_before_cutoff_allowed(self):
        decision = evaluate_cutoff(
            date(2024, 12, 30), datetime(2024, 12, 30, 10, 29, 59), time(10, 30)
        )
        assert decision.is_same_day is True
        assert decision.is_cutoff_passed is False
        assert decision.blocks is False

    def test_at_cutoff_blocked(self):
        decision = evaluate_cutoff(date(2024, 12, 30), datetime(2024, 12, 30, 10, 30), time(10, 30))
        assert decision.blocks is True

    def test_other_days_never_blocked(self):
        decision = evaluate_cutoff(date(2024, 12, 31), datetime(2024, 12, 30, 23, 0), time(10, 30))
        assert decision.is_cutoff_passed is True
        assert decision.blocks is False
