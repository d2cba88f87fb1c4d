"""
Freeze Engine Domain Models (``meal_modules.freeze.models``).

Responsibility
--------------
Frozen result objects returned by the Freeze Engine and the weekly
freeze record derived from either read path.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID


@dataclass(frozen=True)
class FreezeResult:
    id: UUID
    status: str
    frozen_at: datetime
    replacement_id: UUID
    replacement_date: date
    subscription_end_date: date


@dataclass(frozen=True)
class UnfreezeResult:
    id: UUID
    status: str
    subscription_end_date: date


@dataclass(frozen=True)
class FreezePeriodResult:
    affected_order_ids: tuple[UUID, ...]
    new_subscription_end_date: date

    @property
    def affected_count(self) -> int:
        return len(self.affected_order_ids)


@dataclass(frozen=True)
class FreezeInfo:
    """Freeze allowance of an employee for the current project-local week."""

    employee_id: UUID
    week_start: date
    used_this_week: int
    week_limit: int

    @property
    def remaining_freezes(self) -> int:
        return max(0, self.week_limit - self.used_this_week)


@dataclass(frozen=True)
class FreezeRecord:
    """
    Weekly freeze usage of one employee.

    ``source`` names the read path the count came from: ``assignments``
    (current FROZEN status) or ``history`` (net freeze events).
    """

    employee_id: UUID
    week: str
    week_start: date
    week_end: date
    used: int
    limit: int
    source: str

    @property
    def is_exhausted(self) -> bool:
        return self.used >= self.limit


@dataclass(frozen=True)
class FreezeHistoryEntry:
    id: UUID
    assignment_id: UUID
    subscription_id: UUID
    action: str
    assignment_date: date
    replacement_date: date | None
    reason: str | None
    occurred_at: datetime
    actor_id: UUID

    @classmethod
    def from_model(cls, row) -> FreezeHistoryEntry:
        return cls(
            id=row.id,
            assignment_id=row.assignment_id,
            subscription_id=row.subscription_id,
            action=row.action.value,
            assignment_date=row.assignment_date,
            replacement_date=row.replacement_date,
            reason=row.reason,
            occurred_at=row.occurred_at,
            actor_id=row.created_by_id,
        )
