"""
Tests for the Budget Ledger.

Validates:
- reserve: exact headroom fits, one unit more does not, rejected spend
  changes nothing
- release / adjust
- check_cutoff: project-local same-day rule and administrative override
- get_dashboard: per project and company-wide
- reconcile: stored spend against spend derived from facts
- tenant scoping
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from sqlalchemy import update

from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import (
    BudgetExceededError,
    CutoffPassedError,
    ProjectNotFoundError,
    ValidationError,
)
from meal_kernel.models import Project
from tests.conftest import TEST_ACTOR_ID, TEST_COMPANY_ID, TEST_TIMEZONE, TODAY


class TestReserve:
    def test_exact_headroom_fits(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("1000.00"), overdraft_limit=Decimal("200.00"))

        spent = budget_ledger.reserve(ctx, project.id, Decimal("1200.00"))

        assert spent == Decimal("1200.00")

    def test_one_more_than_headroom_rejected(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("1000.00"), overdraft_limit=Decimal("200.00"))
        budget_ledger.reserve(ctx, project.id, Decimal("1200.00"))

        with pytest.raises(BudgetExceededError) as exc_info:
            budget_ledger.reserve(ctx, project.id, Decimal("1.00"))

        assert exc_info.value.code == "BUDGET_EXCEEDED"
        assert budget_ledger.get_position(ctx, project.id).spent == Decimal("1200.00")

    def test_rejected_spend_changes_nothing(self, ctx, budget_ledger, make_project, captured_logs):
        project = make_project(budget=Decimal("100.00"))
        budget_ledger.reserve(ctx, project.id, Decimal("50.00"))

        with pytest.raises(BudgetExceededError) as exc_info:
            budget_ledger.reserve(ctx, project.id, Decimal("60.00"))

        assert exc_info.value.requested == "60.00"
        assert exc_info.value.available == "100.00"
        assert budget_ledger.get_position(ctx, project.id).spent == Decimal("50.00")

        assert budget_ledger.reserve(ctx, project.id, Decimal("50.00")) == Decimal("100.00")

        messages = [r["message"] for r in captured_logs()]
        assert "budget_reserve_rejected" in messages
        assert messages.count("budget_reserved") == 2

    def test_overdraft_scenario(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("1000.00"), overdraft_limit=Decimal("200.00"))
        budget_ledger.reserve(ctx, project.id, Decimal("1150.00"))

        position = budget_ledger.get_position(ctx, project.id)
        assert position.available_budget == Decimal("1200.00")
        assert position.consumption_percent == Decimal("115.00")

        with pytest.raises(BudgetExceededError):
            budget_ledger.reserve(ctx, project.id, Decimal("60.00"))
        assert budget_ledger.reserve(ctx, project.id, Decimal("50.00")) == Decimal("1200.00")

    def test_exact_headroom_in_cents(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("0.30"), overdraft_limit=Decimal("0.00"))
        budget_ledger.reserve(ctx, project.id, Decimal("0.10"))

        assert budget_ledger.reserve(ctx, project.id, Decimal("0.20")) == Decimal("0.30")
        with pytest.raises(BudgetExceededError):
            budget_ledger.reserve(ctx, project.id, Decimal("0.01"))

    def test_cent_amounts_accumulate_exactly(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("1.00"), overdraft_limit=Decimal("0.10"))

        for _ in range(11):
            budget_ledger.reserve(ctx, project.id, Decimal("0.10"))
        assert budget_ledger.release(ctx, project.id, Decimal("0.70")) == Decimal("0.40")
        assert budget_ledger.reserve(ctx, project.id, Decimal("0.70")) == Decimal("1.10")
        assert budget_ledger.get_position(ctx, project.id).remaining == Decimal("0.00")

    def test_zero_is_a_no_op(self, ctx, budget_ledger, project):
        assert budget_ledger.reserve(ctx, project.id, Decimal("0")) == Decimal("0.00")

    def test_negative_amount_rejected(self, ctx, budget_ledger, project):
        with pytest.raises(ValidationError):
            budget_ledger.reserve(ctx, project.id, Decimal("-5.00"))

    def test_project_status_untouched_on_overspend(self, ctx, budget_ledger, make_project, session):
        project = make_project(budget=Decimal("10.00"))
        with pytest.raises(BudgetExceededError):
            budget_ledger.reserve(ctx, project.id, Decimal("11.00"))
        session.refresh(project)
        assert project.is_active


class TestReleaseAndAdjust:
    def test_release(self, ctx, budget_ledger, project):
        budget_ledger.reserve(ctx, project.id, Decimal("300.00"))
        assert budget_ledger.release(ctx, project.id, Decimal("100.00")) == Decimal("200.00")

    def test_adjust_positive_reserves(self, ctx, budget_ledger, project):
        assert budget_ledger.adjust(ctx, project.id, Decimal("40.00")) == Decimal("40.00")

    def test_adjust_negative_releases(self, ctx, budget_ledger, project):
        budget_ledger.reserve(ctx, project.id, Decimal("40.00"))
        assert budget_ledger.adjust(ctx, project.id, Decimal("-10.00")) == Decimal("30.00")

    def test_adjust_respects_headroom(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("20.00"))
        with pytest.raises(BudgetExceededError):
            budget_ledger.adjust(ctx, project.id, Decimal("21.00"))


class TestCutoff:
    def test_today_before_cutoff_allowed(self, budget_ledger, project):
        decision = budget_ledger.check_cutoff(project, TODAY)
        assert decision.is_same_day
        assert not decision.blocks

    def test_today_at_cutoff_rejected(self, budget_ledger, project, clock):
        clock.set_local(datetime.combine(TODAY, time(10, 30)), TEST_TIMEZONE)

        with pytest.raises(CutoffPassedError) as exc_info:
            budget_ledger.check_cutoff(project, TODAY)

        assert exc_info.value.target_date == str(TODAY)
        assert budget_ledger.is_cutoff_passed(project) is True

    def test_tomorrow_never_gated(self, budget_ledger, project, clock):
        clock.set_local(datetime.combine(TODAY, time(23, 59)), TEST_TIMEZONE)
        assert not budget_ledger.check_cutoff(project, date(2024, 12, 31)).blocks

    def test_override_logged(self, budget_ledger, project, clock, captured_logs):
        clock.set_local(datetime.combine(TODAY, time(12, 0)), TEST_TIMEZONE)

        budget_ledger.check_cutoff(project, TODAY, admin_override=True)

        assert any(r["message"] == "cutoff_override_used" for r in captured_logs())

    def test_cutoff_is_project_local(self, budget_ledger, make_project, clock):
        # 11:00 in Dushanbe (UTC+5) is 06:00 UTC, still before a UTC project's cutoff
        utc_project = make_project(name="London Desk", timezone="UTC")
        clock.set_local(datetime.combine(TODAY, time(11, 0)), TEST_TIMEZONE)

        assert budget_ledger.is_cutoff_passed(utc_project) is False
        assert budget_ledger.project_today(utc_project) == TODAY


class TestDashboard:
    def test_project_dashboard(self, ctx, budget_ledger, make_project, make_employee, make_subscription):
        project = make_project(budget=Decimal("1000.00"))
        make_subscription(project, [make_employee(project)])

        dashboard = budget_ledger.get_dashboard(ctx, project.id)

        assert dashboard.total_budget == Decimal("1000.00")
        assert dashboard.total_orders == 10
        assert dashboard.active_orders == 10
        assert dashboard.paused_orders == 0
        assert dashboard.forecast == Decimal("250.00")
        assert dashboard.budget_consumption_percent == Decimal("25.00")
        assert dashboard.available_budget == Decimal("1000.00")
        assert dashboard.is_low_budget is False
        assert dashboard.low_budget_warning is None
        assert dashboard.cutoff_time == time(10, 30)
        assert dashboard.is_cutoff_passed is False
        assert dashboard.timezone == TEST_TIMEZONE

    def test_company_dashboard_aggregates(self, ctx, budget_ledger, make_project, config):
        make_project(name="North", budget=Decimal("1000.00"))
        make_project(name="South", budget=Decimal("500.00"), overdraft_limit=Decimal("100.00"))

        dashboard = budget_ledger.get_dashboard(ctx)

        assert dashboard.total_budget == Decimal("1500.00")
        assert dashboard.available_budget == Decimal("1600.00")
        assert dashboard.total_orders == 0
        assert dashboard.timezone == config.default_timezone

    def test_low_budget_warning(self, ctx, budget_ledger, make_project):
        project = make_project(budget=Decimal("1000.00"), overdraft_limit=Decimal("200.00"))
        budget_ledger.reserve(ctx, project.id, Decimal("1150.00"))

        dashboard = budget_ledger.get_dashboard(ctx, project.id)

        assert dashboard.available_budget == Decimal("1200.00")
        assert dashboard.budget_consumption_percent == Decimal("115.00")
        assert dashboard.is_low_budget is True
        assert dashboard.low_budget_warning.startswith("Low budget: 50.00 remaining")


class TestReconcile:
    def test_consistent_after_subscription(self, ctx, budget_ledger, project, employee, make_subscription):
        make_subscription(project, [employee])

        report = budget_ledger.reconcile(ctx, project.id)

        assert report.recorded_spent == Decimal("250.00")
        assert report.derived_spent == Decimal("250.00")
        assert report.is_consistent

    def test_drift_detected_and_logged(self, ctx, budget_ledger, project, session, captured_logs):
        session.execute(update(Project).where(Project.id == project.id).values(spent=Decimal("7.00")))

        report = budget_ledger.reconcile(ctx, project.id)

        assert report.drift == Decimal("7.00")
        assert not report.is_consistent
        assert any(r["message"] == "budget_spend_drift" for r in captured_logs())


class TestTenantScoping:
    def test_foreign_company_is_not_found(self, other_ctx, budget_ledger, project):
        with pytest.raises(ProjectNotFoundError):
            budget_ledger.get_position(other_ctx, project.id)

    def test_project_narrowed_context(self, budget_ledger, make_project):
        first = make_project(name="First")
        second = make_project(name="Second")
        narrowed = RequestContext(
            company_id=TEST_COMPANY_ID, actor_id=TEST_ACTOR_ID, project_id=second.id
        )

        with pytest.raises(ProjectNotFoundError):
            budget_ledger.reserve(narrowed, first.id, Decimal("1.00"))
        assert budget_ledger.reserve(narrowed, second.id, Decimal("1.00")) == Decimal("1.00")
