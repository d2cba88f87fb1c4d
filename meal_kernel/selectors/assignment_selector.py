"""
Module: meal_kernel.selectors.assignment_selector
Responsibility: Read-side queries over assignments and freeze history --
    weekly freeze counts (two read paths), committed spend, dashboard
    statistics, per-employee order listings and per-day calendars.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Weekly freeze counts are derived on read, never stored.
    - Both freeze read paths (assignment status, freeze history) count the
      same thing: orders of the employee dated inside the week that are
      currently frozen.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from meal_kernel.db.types import to_money
from meal_kernel.domain.dtos import CalendarDay, OrderCounts, OrderView
from meal_kernel.models import (
    COMMITTED_STATUSES,
    LIVE_STATUSES,
    Assignment,
    AssignmentStatus,
    FreezeAction,
    FreezeEvent,
)
from meal_kernel.selectors.base import BaseSelector


class AssignmentSelector(BaseSelector):
    """Read-only access to assignments and their freeze history."""

    # -----------------------------------------------------------------
    # Freeze counts
    # -----------------------------------------------------------------

    def count_frozen_in_range(self, employee_id: UUID, start: date, end: date) -> int:
        """FROZEN assignments of the employee dated within [start, end]."""
        return self.session.execute(
            select(func.count(Assignment.id)).where(
                Assignment.employee_id == employee_id,
                Assignment.status == AssignmentStatus.FROZEN,
                Assignment.assignment_date.between(start, end),
            )
        ).scalar_one()

    def count_frozen_from_history(self, employee_id: UUID, start: date, end: date) -> int:
        """Net freezes (freezes minus unfreezes) recorded for dates in [start, end]."""
        net = self.session.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (FreezeEvent.action == FreezeAction.FREEZE, 1),
                            else_=-1,
                        )
                    ),
                    0,
                )
            ).where(
                FreezeEvent.employee_id == employee_id,
                FreezeEvent.assignment_date.between(start, end),
            )
        ).scalar_one()
        return int(net)

    def freeze_history(
        self,
        employee_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> list[FreezeEvent]:
        stmt = select(FreezeEvent).where(FreezeEvent.employee_id == employee_id)
        if start is not None:
            stmt = stmt.where(FreezeEvent.assignment_date >= start)
        if end is not None:
            stmt = stmt.where(FreezeEvent.assignment_date <= end)
        stmt = stmt.order_by(FreezeEvent.occurred_at.desc(), FreezeEvent.created_at.desc())
        return list(self.session.execute(stmt).scalars())

    # -----------------------------------------------------------------
    # Occupancy
    # -----------------------------------------------------------------

    def occupied_dates(self, employee_id: UUID, dates: Iterable[date] | None = None) -> set[date]:
        """Dates on which the employee already has a non-cancelled assignment."""
        stmt = select(Assignment.assignment_date).where(
            Assignment.employee_id == employee_id,
            Assignment.status != AssignmentStatus.CANCELLED,
        )
        if dates is not None:
            wanted = list(dates)
            if not wanted:
                return set()
            stmt = stmt.where(Assignment.assignment_date.in_(wanted))
        return set(self.session.execute(stmt).scalars())

    def occupied_dates_from(self, employee_id: UUID, start: date) -> set[date]:
        stmt = select(Assignment.assignment_date).where(
            Assignment.employee_id == employee_id,
            Assignment.status != AssignmentStatus.CANCELLED,
            Assignment.assignment_date >= start,
        )
        return set(self.session.execute(stmt).scalars())

    # -----------------------------------------------------------------
    # Spend
    # -----------------------------------------------------------------

    def committed_order_spend(self, project_id: UUID) -> Decimal:
        """Sum of prices of orders that count against the project budget."""
        total = self.session.execute(
            select(func.sum(Assignment.price)).where(
                Assignment.project_id == project_id,
                Assignment.status.in_(list(COMMITTED_STATUSES)),
            )
        ).scalar_one()
        return to_money(total)

    def subscription_amount(self, subscription_id: UUID) -> Decimal:
        """Value of a subscription: sum of its committed order prices."""
        total = self.session.execute(
            select(func.sum(Assignment.price)).where(
                Assignment.subscription_id == subscription_id,
                Assignment.status.in_(list(COMMITTED_STATUSES)),
            )
        ).scalar_one()
        return to_money(total)

    # -----------------------------------------------------------------
    # Dashboard and listings
    # -----------------------------------------------------------------

    def order_counts(self, project_ids: list[UUID], today: date) -> OrderCounts:
        if not project_ids:
            return OrderCounts(0, 0, 0, to_money(None))
        row = self.session.execute(
            select(
                func.count(Assignment.id),
                func.sum(case((Assignment.status.in_(list(LIVE_STATUSES)), 1), else_=0)),
                func.sum(case((Assignment.status == AssignmentStatus.PAUSED, 1), else_=0)),
                func.sum(
                    case(
                        (
                            Assignment.status.in_(list(LIVE_STATUSES))
                            & (Assignment.assignment_date >= today),
                            Assignment.price,
                        ),
                        else_=0,
                    )
                ),
            ).where(Assignment.project_id.in_(project_ids))
        ).one()
        total, active, paused, forecast = row
        return OrderCounts(
            total_orders=int(total or 0),
            active_orders=int(active or 0),
            paused_orders=int(paused or 0),
            forecast=to_money(forecast),
        )

    def orders_for_employee(
        self,
        employee_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> list[OrderView]:
        stmt = select(Assignment).where(Assignment.employee_id == employee_id)
        if start is not None:
            stmt = stmt.where(Assignment.assignment_date >= start)
        if end is not None:
            stmt = stmt.where(Assignment.assignment_date <= end)
        stmt = stmt.order_by(Assignment.assignment_date)
        return [OrderView.from_model(row) for row in self.session.execute(stmt).scalars()]

    def orders_for_subscription(self, subscription_id: UUID) -> list[OrderView]:
        stmt = (
            select(Assignment)
            .where(Assignment.subscription_id == subscription_id)
            .order_by(Assignment.assignment_date, Assignment.employee_id)
        )
        return [OrderView.from_model(row) for row in self.session.execute(stmt).scalars()]

    def calendar(self, project_id: UUID, start: date, end: date) -> list[CalendarDay]:
        rows = self.session.execute(
            select(Assignment.assignment_date, Assignment.status, func.count(Assignment.id))
            .where(
                Assignment.project_id == project_id,
                Assignment.assignment_date.between(start, end),
            )
            .group_by(Assignment.assignment_date, Assignment.status)
            .order_by(Assignment.assignment_date)
        ).all()
        by_day: dict[date, dict[str, int]] = defaultdict(dict)
        for day, status, count in rows:
            by_day[day][AssignmentStatus(status).value] = int(count)
        return [CalendarDay(day=day, counts=counts) for day, counts in sorted(by_day.items())]
