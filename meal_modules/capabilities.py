"""
Capability protocols the Subscription Orchestrator depends on.

The orchestrator talks to each collaborator through the narrow surface
it needs instead of a single facade, so tests and alternative
implementations can stand in for any one of them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from meal_kernel.domain.context import RequestContext


@runtime_checkable
class CalendarCapability(Protocol):
    """Satisfied by the ``meal_engines.calendar`` module itself."""

    def generate_dates(
        self,
        start: date,
        end: date,
        pattern,
        custom_dates: Iterable[date] | None = None,
    ) -> tuple[date, ...]: ...

    def resolve_combo_price(self, combo_type: str, combo_prices: Mapping[str, Decimal]) -> Decimal: ...


@runtime_checkable
class FreezeCapability(Protocol):
    def freeze_order(self, ctx: RequestContext, order_id: UUID, reason=None, admin_override=False): ...

    def unfreeze_order(self, ctx: RequestContext, order_id: UUID, admin_override=False): ...

    def freeze_period(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        reason=None,
        admin_override=False,
    ): ...

    def get_employee_freeze_info(self, ctx: RequestContext, employee_id: UUID): ...


@runtime_checkable
class BudgetLedgerCapability(Protocol):
    def project_today(self, project) -> date: ...

    def check_cutoff(self, project, target_date: date, admin_override: bool = False): ...

    def is_cutoff_passed(self, project) -> bool: ...

    def reserve(self, ctx: RequestContext, project_id: UUID, amount: Decimal) -> Decimal: ...

    def release(self, ctx: RequestContext, project_id: UUID, amount: Decimal) -> Decimal: ...

    def adjust(self, ctx: RequestContext, project_id: UUID, delta: Decimal) -> Decimal: ...


@runtime_checkable
class CompensationLedgerCapability(Protocol):
    def process_transaction(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        project_id: UUID,
        amount: Decimal,
        restaurant_name: str | None = None,
        description: str | None = None,
    ): ...

    def get_daily_summary(self, ctx: RequestContext, project_id: UUID, day: date): ...


__all__ = [
    "BudgetLedgerCapability",
    "CalendarCapability",
    "CompensationLedgerCapability",
    "FreezeCapability",
]
