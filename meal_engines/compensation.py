"""
meal_engines.compensation -- Daily allowance split and rollover arithmetic.

Responsibility:
    Splits a meal purchase between company and employee given the
    employee's remaining allowance for the day, and computes the next
    day's rollover balance from one day's facts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The Compensation Ledger
    service loads the day's facts and persists the results.

Invariants enforced:
    - company_paid + employee_paid == amount exactly, both >= 0.
    - company_paid == min(amount, max(0, remaining)).
    - remaining = daily_limit + rollover - used; the true value may be
      negative and is reported as such.
    - Rollover is a pure function of (limit, rollover, used, enabled):
      recomputing it for the same day always yields the same value.

Failure modes:
    - ValueError for a negative amount (callers validate first and raise
      ValidationError with context).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from meal_kernel.db.types import ZERO, round_money
from meal_engines.tracer import traced_engine


@dataclass(frozen=True)
class CompensationSplit:
    """How one purchase is divided between company and employee."""

    amount: Decimal
    company_paid: Decimal
    employee_paid: Decimal
    remaining_before: Decimal

    @property
    def remaining_after(self) -> Decimal:
        return self.remaining_before - self.company_paid


def remaining_allowance(
    daily_limit: Decimal,
    accumulated_rollover: Decimal,
    used_today: Decimal,
) -> Decimal:
    return round_money(daily_limit + accumulated_rollover - used_today)


@traced_engine("compensation_split", "1.0")
def split_transaction(amount: Decimal, remaining: Decimal) -> CompensationSplit:
    amount = round_money(amount)
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    company_paid = min(amount, max(ZERO, remaining))
    return CompensationSplit(
        amount=amount,
        company_paid=company_paid,
        employee_paid=amount - company_paid,
        remaining_before=remaining,
    )


@traced_engine("compensation_rollover", "1.0")
def next_day_rollover(
    daily_limit: Decimal,
    accumulated_rollover: Decimal,
    used_today: Decimal,
    rollover_enabled: bool,
) -> Decimal:
    """Rollover balance carried into the following day."""
    if not rollover_enabled:
        return ZERO
    return max(ZERO, remaining_allowance(daily_limit, accumulated_rollover, used_today))
