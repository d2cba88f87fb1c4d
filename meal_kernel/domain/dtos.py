"""
Read-side DTOs shared by selectors and module services.

All objects are frozen dataclasses built from ORM rows at the layer
boundary, so callers never hold live ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class OrderView:
    """One assignment as seen by callers."""

    id: UUID
    project_id: UUID
    subscription_id: UUID | None
    employee_id: UUID | None
    guest_name: str | None
    assignment_date: date
    combo_type: str
    price: Decimal
    status: str
    frozen_at: datetime | None = None
    freeze_reason: str | None = None
    replacement_date: date | None = None
    replaces_id: UUID | None = None

    @classmethod
    def from_model(cls, row) -> OrderView:
        return cls(
            id=row.id,
            project_id=row.project_id,
            subscription_id=row.subscription_id,
            employee_id=row.employee_id,
            guest_name=row.guest_name,
            assignment_date=row.assignment_date,
            combo_type=row.combo_type,
            price=row.price,
            status=row.status.value,
            frozen_at=row.frozen_at,
            freeze_reason=row.freeze_reason,
            replacement_date=row.replacement_date,
            replaces_id=row.replaces_id,
        )


@dataclass(frozen=True)
class CalendarDay:
    """Order counts for one date, keyed by status value."""

    day: date
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class OrderCounts:
    """Dashboard order statistics for a set of projects."""

    total_orders: int
    active_orders: int
    paused_orders: int
    forecast: Decimal
