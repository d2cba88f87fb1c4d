"""
meal_engines.budget -- Project budget position and headroom arithmetic.

Responsibility:
    Computes available budget, consumption percentage, low-budget flag and
    warning text from (budget, overdraft, spent), and answers whether a
    new spend fits the remaining headroom.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The Budget Ledger
    service supplies the numbers and enforces the decision atomically in
    the database; this module only defines the arithmetic.

Invariants enforced:
    - available = budget + overdraft.
    - consumption = spent / budget * 100, two places half-up; 0 when the
      budget is 0.
    - low budget when available - spent < budget * threshold.
    - A spend fits iff spent + amount <= available (exact headroom fits).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from meal_kernel.db.types import ZERO, round_money
from meal_engines.tracer import traced_engine

_HUNDRED = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class BudgetPosition:
    """Snapshot of a project's budget figures."""

    budget: Decimal
    overdraft_limit: Decimal
    spent: Decimal
    low_budget_threshold: Decimal

    @property
    def available_budget(self) -> Decimal:
        return round_money(self.budget + self.overdraft_limit)

    @property
    def remaining(self) -> Decimal:
        """Headroom left before the overdraft ceiling (may be negative)."""
        return round_money(self.available_budget - self.spent)

    @property
    def consumption_percent(self) -> Decimal:
        if self.budget == 0:
            return Decimal("0.00")
        return (self.spent / self.budget * _HUNDRED).quantize(
            _PERCENT_QUANTUM, rounding=ROUND_HALF_UP
        )

    @property
    def is_low_budget(self) -> bool:
        return self.remaining < self.budget * self.low_budget_threshold

    @property
    def low_budget_warning(self) -> str | None:
        return low_budget_warning(self)

    def allows(self, amount: Decimal) -> bool:
        return fits_headroom(self.spent, amount, self.available_budget)


@traced_engine("budget_position", "1.0")
def compute_position(
    budget: Decimal,
    overdraft_limit: Decimal,
    spent: Decimal,
    low_budget_threshold: Decimal,
) -> BudgetPosition:
    return BudgetPosition(
        budget=round_money(budget),
        overdraft_limit=round_money(overdraft_limit),
        spent=round_money(spent),
        low_budget_threshold=low_budget_threshold,
    )


def fits_headroom(spent: Decimal, amount: Decimal, available: Decimal) -> bool:
    return spent + amount <= available


def low_budget_warning(position: BudgetPosition) -> str | None:
    """Human-readable warning, or None when the budget is healthy."""
    if not position.is_low_budget:
        return None
    remaining = position.remaining
    if remaining == ZERO:
        return "Budget exhausted"
    if remaining < 0:
        return f"Budget overdrawn by {-remaining}"
    if position.available_budget == 0:
        return f"Low budget: {remaining} remaining"
    share = (remaining / position.available_budget * _HUNDRED).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )
    return f"Low budget: {remaining} remaining ({share}%)"
