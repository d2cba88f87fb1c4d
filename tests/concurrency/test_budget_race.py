"""
Concurrency tests: contended budget, freeze allowance and compensation.

Each worker thread owns its session and commits for real, so these tests
use ``committed_session_factory`` rather than the rolled-back ``session``
fixture.  Setup data is committed first, then workers race on it.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest

from meal_kernel.exceptions import BudgetExceededError, FreezeLimitExceededError
from meal_kernel.models import ServiceType
from meal_kernel.services.lock_service import LockManager
from meal_modules.budget.service import BudgetLedger
from meal_modules.compensation.service import CompensationLedger
from meal_modules.freeze.service import FreezeEngine
from meal_modules.subscriptions.models import CreateSubscriptionRequest, EmployeeScheduleSpec
from meal_modules.subscriptions.service import SubscriptionOrchestrator
from tests.conftest import COMBO_25, TODAY, new_employee, new_project

pytestmark = pytest.mark.slow_locks

WORKERS = 10


def _race(workers: int, attempt) -> list[bool]:
    """Run ``attempt(i)`` on ``workers`` threads released together."""
    barrier = threading.Barrier(workers)

    def run(i: int) -> bool:
        barrier.wait(timeout=10)
        return attempt(i)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(run, i) for i in range(workers)]
        return [f.result(timeout=60) for f in futures]


class TestBudgetRace:
    def test_reservations_never_overspend(self, committed_session_factory, ctx, config, clock):
        setup = committed_session_factory()
        project = new_project(setup, budget=Decimal("100.00"))
        project_id = project.id
        setup.commit()

        def attempt(_i: int) -> bool:
            session = committed_session_factory()
            try:
                BudgetLedger(session, config, clock).reserve(ctx, project_id, Decimal("20.00"))
                session.commit()
                return True
            except BudgetExceededError:
                session.rollback()
                return False

        results = _race(WORKERS, attempt)

        assert results.count(True) == 5
        check = committed_session_factory()
        assert BudgetLedger(check, config, clock).get_position(ctx, project_id).spent == Decimal("100.00")


class TestFreezeRace:
    def test_weekly_limit_holds_under_contention(
        self, committed_session_factory, ctx, config, clock, lock_manager
    ):
        setup = committed_session_factory()
        project = new_project(setup)
        employee = new_employee(setup, project)
        employee_id = employee.id
        orchestrator = SubscriptionOrchestrator(setup, config, clock, lock_manager=lock_manager)
        subscription = orchestrator.create_subscription(
            ctx,
            CreateSubscriptionRequest(
                project_id=project.id,
                start_date=date(2025, 1, 1),
                end_date=date(2025, 1, 5),
                employees=(EmployeeScheduleSpec(employee.id, COMBO_25),),
            ),
        )
        setup.commit()
        order_ids = [o.id for o in subscription.assignments[:4]]

        def attempt(i: int) -> bool:
            session = committed_session_factory()
            engine = FreezeEngine(session, config, clock, lock_manager=lock_manager)
            try:
                engine.freeze_order(ctx, order_ids[i])
                session.commit()
                return True
            except FreezeLimitExceededError:
                session.rollback()
                return False

        results = _race(len(order_ids), attempt)

        assert results.count(True) == config.max_freezes_per_week
        check = committed_session_factory()
        record = FreezeEngine(check, config, clock).get_freeze_record(ctx, employee_id, date(2025, 1, 1))
        assert record.used == config.max_freezes_per_week
        after = SubscriptionOrchestrator(check, config, clock).get_subscription(ctx, subscription.id)
        assert after.end_date == date(2025, 1, 5 + config.max_freezes_per_week)


class TestCompensationRace:
    def test_allowance_drawn_once(self, committed_session_factory, ctx, config, clock):
        locks = LockManager(timeout_seconds=30)
        setup = committed_session_factory()
        project = new_project(
            setup,
            service_types=(ServiceType.COMPENSATION,),
            compensation_daily_limit=Decimal("100.00"),
        )
        employee = new_employee(setup, project)
        project_id, employee_id = project.id, employee.id
        setup.commit()

        def attempt(_i: int) -> bool:
            session = committed_session_factory()
            ledger = CompensationLedger(session, config=config, clock=clock, lock_manager=locks)
            ledger.process_transaction(ctx, employee_id, project_id, Decimal("30.00"))
            session.commit()
            return True

        _race(5, attempt)

        check = CompensationLedger(committed_session_factory(), config=config, clock=clock)
        summary = check.get_daily_summary(ctx, project_id, TODAY)
        assert summary.transaction_count == 5
        assert summary.total_amount == Decimal("150.00")
        assert summary.total_company_paid == Decimal("100.00")
        assert summary.total_employee_paid == Decimal("50.00")
