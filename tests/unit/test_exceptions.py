"""Tests for the typed exception hierarchy: codes and structured fields."""

from datetime import date, time

import pytest

from meal_kernel.exceptions import (
    BudgetExceededError,
    ConcurrencyError,
    CutoffPassedError,
    EmployeeNotFoundError,
    EngineTimeoutError,
    EntityNotFoundError,
    FreezeLimitExceededError,
    InvalidStateError,
    LockTimeoutError,
    MealEngineError,
    OptimisticLockError,
    OrderNotFoundError,
    ProjectNotFoundError,
    StorageTimeoutError,
    SubscriptionNotFoundError,
    ValidationError,
)


class TestCodes:
    @pytest.mark.parametrize(
        "exc, code",
        [
            (ProjectNotFoundError("p-1"), "NOT_FOUND"),
            (InvalidStateError("order", "o-1", "frozen", "freeze"), "INVALID_STATE"),
            (ValidationError("amount", "must be positive"), "VALIDATION_ERROR"),
            (FreezeLimitExceededError("e-1", date(2025, 1, 3), date(2024, 12, 30), 2, 2), "FREEZE_LIMIT_EXCEEDED"),
            (BudgetExceededError("p-1", "60.00", "50.00", "100.00"), "BUDGET_EXCEEDED"),
            (CutoffPassedError("p-1", date(2024, 12, 30), time(10, 30), "10:45"), "CUTOFF_PASSED"),
            (OptimisticLockError("subscription", "s-1"), "CONFLICT"),
            (LockTimeoutError("subscription:s-1", 2.0), "LOCK_TIMEOUT"),
            (StorageTimeoutError("budget_reserve", "database is locked"), "STORAGE_TIMEOUT"),
        ],
    )
    def test_code(self, exc, code):
        assert exc.code == code
        assert isinstance(exc, MealEngineError)


class TestHierarchy:
    def test_not_found_subclasses(self):
        for cls, entity in [
            (ProjectNotFoundError, "project"),
            (EmployeeNotFoundError, "employee"),
            (SubscriptionNotFoundError, "subscription"),
            (OrderNotFoundError, "order"),
        ]:
            exc = cls("abc")
            assert isinstance(exc, EntityNotFoundError)
            assert exc.entity_type == entity
            assert exc.entity_id == "abc"
            assert str(exc) == f"{entity.capitalize()} not found: abc"

    def test_retryable_kinds(self):
        assert issubclass(OptimisticLockError, ConcurrencyError)
        assert issubclass(LockTimeoutError, EngineTimeoutError)
        assert issubclass(StorageTimeoutError, EngineTimeoutError)


class TestStructuredFields:
    def test_invalid_state_message(self):
        exc = InvalidStateError(
            "order", "o-1", "delivered", "freeze", "order date is in the past"
        )
        assert exc.current_state == "delivered"
        assert exc.operation == "freeze"
        assert str(exc) == (
            "Cannot freeze order o-1 in state delivered: order date is in the past"
        )

    def test_freeze_limit_names_offending_date(self):
        exc = FreezeLimitExceededError("e-1", date(2025, 1, 3), date(2024, 12, 30), 2, 2)
        assert exc.offending_date == "2025-01-03"
        assert exc.week_start == "2024-12-30"
        assert exc.used == 2
        assert exc.limit == 2

    def test_budget_fields_are_strings(self):
        exc = BudgetExceededError("p-1", "60.00", "50.00", "100.00")
        assert exc.requested == "60.00"
        assert exc.available == "100.00"

    def test_lock_timeout_fields(self):
        exc = LockTimeoutError("employee:e-1", 0.5)
        assert exc.resource == "employee:e-1"
        assert exc.timeout_seconds == 0.5
