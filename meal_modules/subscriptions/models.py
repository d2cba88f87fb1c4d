"""
Subscription Orchestrator Domain Models (``meal_modules.subscriptions.models``).

Responsibility
--------------
Request and result objects of the Subscription Orchestrator and the daily
settlement job.

Invariants enforced
-------------------
* Requests are validated structurally in ``__post_init__``; everything
  that needs storage is validated by the service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from meal_engines.calendar import SchedulePattern
from meal_kernel.domain.dtos import OrderView
from meal_kernel.exceptions import ValidationError


class BulkAction(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    CHANGE_COMBO = "change_combo"
    CANCEL = "cancel"
    CHANGE_ADDRESS = "change_address"

    @classmethod
    def parse(cls, value: BulkAction | str) -> BulkAction:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError("action", f"unknown bulk action {value!r}") from None


@dataclass(frozen=True)
class EmployeeScheduleSpec:
    """One employee's enrollment within a new subscription."""

    employee_id: UUID
    combo_type: str
    pattern: SchedulePattern | str = SchedulePattern.EVERY_DAY
    custom_dates: tuple[date, ...] = ()


@dataclass(frozen=True)
class CreateSubscriptionRequest:
    project_id: UUID
    start_date: date
    end_date: date
    employees: tuple[EmployeeScheduleSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.employees:
            raise ValidationError("employees", "at least one employee is required")
        seen: set[UUID] = set()
        for spec in self.employees:
            if spec.employee_id in seen:
                raise ValidationError("employees", f"employee {spec.employee_id} listed twice")
            seen.add(spec.employee_id)

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True)
class SubscriptionResult:
    id: UUID
    project_id: UUID
    start_date: date
    original_end_date: date
    end_date: date
    total_amount: Decimal
    paid_amount: Decimal
    is_paid: bool
    total_days: int
    paused_days_count: int
    status: str
    assignments: tuple[OrderView, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, row, assignments=()) -> SubscriptionResult:
        return cls(
            id=row.id,
            project_id=row.project_id,
            start_date=row.start_date,
            original_end_date=row.original_end_date,
            end_date=row.end_date,
            total_amount=row.total_amount,
            paid_amount=row.paid_amount,
            is_paid=row.is_paid,
            total_days=row.total_days,
            paused_days_count=row.paused_days_count,
            status=row.status.value,
            assignments=tuple(assignments),
        )


@dataclass(frozen=True)
class BulkActionResult:
    action: str
    updated_count: int
    budget_delta: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class SettlementResult:
    project_id: UUID
    day: date
    delivered_count: int


@dataclass(frozen=True)
class CompletionResult:
    project_id: UUID
    day: date
    completed_subscription_ids: tuple[UUID, ...] = ()

    @property
    def completed_count(self) -> int:
        return len(self.completed_subscription_ids)
