"""
meal_engines.calendar -- Calendar Generator: recurrence pattern to assignment dates.

Responsibility:
    Expands (start, end, pattern) into the ordered, deduplicated tuple of
    dates a subscription delivers on, prices each date from the combo
    price table and buckets dates into ISO weeks.

Architecture position:
    Engines -- pure calculation layer, no ORM, no clock, no I/O.  Calling
    any function twice with the same input yields the same output.

Invariants enforced:
    - Output dates are strictly increasing and inside [start, end].
    - EVERY_OTHER_DAY steps by exactly 2 calendar days from ``start``;
      weekends are not skipped.
    - CUSTOM never invents dates: it only filters and deduplicates.

Failure modes:
    - ValidationError: end before start, unknown pattern, empty custom
      list, custom list with no date inside the range, unknown combo.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from meal_kernel.db.types import round_money
from meal_kernel.exceptions import ValidationError
from meal_engines.tracer import traced_engine


class SchedulePattern(str, Enum):
    """Recurrence patterns a subscription can be generated from."""

    EVERY_DAY = "every_day"
    EVERY_OTHER_DAY = "every_other_day"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: SchedulePattern | str) -> SchedulePattern:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if member.value == normalized or member.name.lower() == normalized:
                return member
        raise ValidationError("pattern", f"unknown schedule pattern {value!r}")


@traced_engine("calendar", "1.0", fingerprint_fields=("pattern",))
def generate_dates(
    start: date,
    end: date,
    pattern: SchedulePattern | str,
    custom_dates: Iterable[date] | None = None,
) -> tuple[date, ...]:
    """
    Expand a recurrence pattern into concrete delivery dates.

    Args:
        start: First day of the range (inclusive).
        end: Last day of the range (inclusive).
        pattern: EVERY_DAY, EVERY_OTHER_DAY or CUSTOM.
        custom_dates: Explicit dates, required for CUSTOM.

    Returns:
        Strictly increasing tuple of dates within [start, end].
    """
    if end < start:
        raise ValidationError("end_date", f"{end} is before start date {start}")

    pattern = SchedulePattern.parse(pattern)

    if pattern is SchedulePattern.EVERY_DAY:
        return _stride(start, end, 1)
    if pattern is SchedulePattern.EVERY_OTHER_DAY:
        return _stride(start, end, 2)

    supplied = list(custom_dates or ())
    if not supplied:
        raise ValidationError("custom_dates", "custom pattern requires at least one date")
    in_range = sorted({d for d in supplied if start <= d <= end})
    if not in_range:
        raise ValidationError(
            "custom_dates", f"no custom date falls within {start}..{end}"
        )
    return tuple(in_range)


def _stride(start: date, end: date, step: int) -> tuple[date, ...]:
    span = (end - start).days
    return tuple(start + timedelta(days=offset) for offset in range(0, span + 1, step))


def resolve_combo_price(combo_type: str, combo_prices: Mapping[str, Decimal]) -> Decimal:
    """Look up the per-day price of a combo; unknown combos are rejected."""
    try:
        return round_money(Decimal(combo_prices[combo_type]))
    except KeyError:
        raise ValidationError(
            "combo_type",
            f"unknown combo {combo_type!r}; expected one of {sorted(combo_prices)}",
        ) from None


def price_schedule(
    dates: Iterable[date],
    combo_type: str,
    combo_prices: Mapping[str, Decimal],
) -> tuple[tuple[date, Decimal], ...]:
    """Pair every date with the combo's price."""
    price = resolve_combo_price(combo_type, combo_prices)
    return tuple((d, price) for d in dates)


def iso_week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``."""
    monday = day - timedelta(days=day.isoweekday() - 1)
    return monday, monday + timedelta(days=6)


def iso_week_label(day: date) -> str:
    """ISO week bucket label, e.g. ``2025-W02``."""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"
