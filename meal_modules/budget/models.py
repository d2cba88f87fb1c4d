"""
Budget Ledger Domain Models (``meal_modules.budget.models``).

Responsibility
--------------
Frozen dataclass value objects returned by the Budget Ledger: a project's
budget figures, the admin dashboard and the spend reconciliation report.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from decimal import Decimal
from uuid import UUID

from meal_engines.budget import BudgetPosition


@dataclass(frozen=True)
class ProjectBudget:
    """Budget figures of one project."""

    project_id: UUID
    currency_code: str
    budget: Decimal
    overdraft_limit: Decimal
    spent: Decimal
    available_budget: Decimal
    remaining: Decimal
    consumption_percent: Decimal
    is_low_budget: bool
    low_budget_warning: str | None

    @classmethod
    def from_position(cls, project_id: UUID, currency_code: str, position: BudgetPosition) -> ProjectBudget:
        return cls(
            project_id=project_id,
            currency_code=currency_code,
            budget=position.budget,
            overdraft_limit=position.overdraft_limit,
            spent=position.spent,
            available_budget=position.available_budget,
            remaining=position.remaining,
            consumption_percent=position.consumption_percent,
            is_low_budget=position.is_low_budget,
            low_budget_warning=position.low_budget_warning,
        )


@dataclass(frozen=True)
class Dashboard:
    """Admin dashboard for one project or a whole company."""

    total_budget: Decimal
    forecast: Decimal
    total_orders: int
    active_orders: int
    paused_orders: int
    budget_consumption_percent: Decimal
    available_budget: Decimal
    is_low_budget: bool
    low_budget_warning: str | None
    cutoff_time: time
    is_cutoff_passed: bool
    timezone: str


@dataclass(frozen=True)
class SpendReconciliation:
    """Stored spend counter compared with spend derived from facts."""

    project_id: UUID
    recorded_spent: Decimal
    derived_spent: Decimal

    @property
    def drift(self) -> Decimal:
        return self.recorded_spent - self.derived_spent

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0
