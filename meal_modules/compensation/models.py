"""
Compensation Ledger Domain Models (``meal_modules.compensation.models``).

Responsibility
--------------
Frozen value objects for processed transactions, an employee's daily
allowance balance and the per-project daily summary.

Invariants enforced
-------------------
* ``CompensationTransaction.amount == company_paid + employee_paid``.
* All monetary fields are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class CompensationTransaction:
    """A processed meal purchase."""

    id: UUID
    employee_id: UUID
    project_id: UUID
    amount: Decimal
    company_paid: Decimal
    employee_paid: Decimal
    transaction_date: date
    transaction_time: datetime
    restaurant_name: str | None = None
    description: str | None = None

    def __post_init__(self):
        if self.company_paid < 0 or self.employee_paid < 0:
            raise ValueError("compensation portions cannot be negative")
        if self.company_paid + self.employee_paid != self.amount:
            raise ValueError(
                f"portions {self.company_paid} + {self.employee_paid} != amount {self.amount}"
            )


@dataclass(frozen=True)
class TransactionResult:
    """Outcome of ``CompensationLedger.process_transaction``."""

    id: UUID
    company_paid: Decimal
    employee_paid: Decimal
    transaction_time: datetime
    remaining_after: Decimal


@dataclass(frozen=True)
class CompensationBalance:
    """An employee's allowance for one project-local day."""

    employee_id: UUID
    balance_date: date
    daily_limit: Decimal
    used_today: Decimal
    accumulated_rollover: Decimal
    rollover_enabled: bool

    @property
    def remaining_today(self) -> Decimal:
        """True remaining allowance; negative if the limit was lowered mid-day."""
        return self.daily_limit + self.accumulated_rollover - self.used_today

    @property
    def payable_today(self) -> Decimal:
        """Remaining allowance floored at zero."""
        return max(Decimal("0.00"), self.remaining_today)


@dataclass(frozen=True)
class EmployeeDaySummary:
    employee_id: UUID
    employee_name: str
    transaction_count: int
    total_amount: Decimal
    company_paid: Decimal
    employee_paid: Decimal


@dataclass(frozen=True)
class DailySummary:
    """Read-side aggregation of one project's transactions on one day."""

    project_id: UUID
    summary_date: date
    transaction_count: int
    total_amount: Decimal
    total_company_paid: Decimal
    total_employee_paid: Decimal
    employees_used: int
    by_employee: tuple[EmployeeDaySummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CompensationSettings:
    project_id: UUID
    daily_limit: Decimal
    rollover_enabled: bool
