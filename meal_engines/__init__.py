"""
Module: meal_engines
Responsibility:
    Re-exports the pure calculators used by the ledger and freeze services:
    calendar expansion, budget position, compensation split/rollover and
    the cutoff decision.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import meal_kernel.db.types and meal_kernel.exceptions only.
    MUST NOT import meal_modules.

Invariants enforced:
    - Engines never read the clock; "now" and "today" are parameters.
    - Decimal-only arithmetic.
    - Identical inputs always produce identical outputs.
"""

from meal_engines.budget import BudgetPosition, compute_position, fits_headroom
from meal_engines.calendar import (
    SchedulePattern,
    generate_dates,
    iso_week_bounds,
    iso_week_label,
    price_schedule,
    resolve_combo_price,
)
from meal_engines.compensation import (
    CompensationSplit,
    next_day_rollover,
    remaining_allowance,
    split_transaction,
)
from meal_engines.cutoff import CutoffDecision, evaluate_cutoff

__all__ = [
    "BudgetPosition",
    "CompensationSplit",
    "CutoffDecision",
    "SchedulePattern",
    "compute_position",
    "evaluate_cutoff",
    "fits_headroom",
    "generate_dates",
    "iso_week_bounds",
    "iso_week_label",
    "next_day_rollover",
    "price_schedule",
    "remaining_allowance",
    "resolve_combo_price",
    "split_transaction",
]
