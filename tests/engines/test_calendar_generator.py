"""
Tests for the Calendar Generator.

Covers:
- EVERY_DAY / EVERY_OTHER_DAY expansion (no weekend skipping)
- CUSTOM filtering and deduplication
- Pattern parsing and validation errors
- Combo price lookup
- ISO week bucketing
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from meal_config.schema import DEFAULT_COMBO_PRICES
from meal_engines.calendar import (
    SchedulePattern,
    generate_dates,
    iso_week_bounds,
    iso_week_label,
    price_schedule,
    resolve_combo_price,
)
from meal_kernel.exceptions import ValidationError

starts = st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31))
spans = st.integers(min_value=0, max_value=120)


class TestEveryDay:
    def test_ten_day_range(self):
        dates = generate_dates(date(2025, 1, 1), date(2025, 1, 10), SchedulePattern.EVERY_DAY)

        assert len(dates) == 10
        assert dates[0] == date(2025, 1, 1)
        assert dates[-1] == date(2025, 1, 10)

    def test_single_day_range(self):
        assert generate_dates(date(2025, 1, 1), date(2025, 1, 1), "every_day") == (date(2025, 1, 1),)

    def test_weekends_included(self):
        dates = generate_dates(date(2025, 1, 3), date(2025, 1, 6), SchedulePattern.EVERY_DAY)
        assert date(2025, 1, 4) in dates  # Saturday
        assert date(2025, 1, 5) in dates  # Sunday

    @given(start=starts, span=spans)
    @settings(max_examples=100)
    def test_length_is_span_plus_one(self, start, span):
        end = start + timedelta(days=span)
        dates = generate_dates(start, end, SchedulePattern.EVERY_DAY)
        assert len(dates) == span + 1
        assert list(dates) == sorted(set(dates))


class TestEveryOtherDay:
    def test_stride_of_two_from_start(self):
        dates = generate_dates(date(2025, 1, 1), date(2025, 1, 10), SchedulePattern.EVERY_OTHER_DAY)

        assert dates == (
            date(2025, 1, 1),
            date(2025, 1, 3),
            date(2025, 1, 5),
            date(2025, 1, 7),
            date(2025, 1, 9),
        )

    @given(start=starts, span=spans)
    @settings(max_examples=100)
    def test_length_and_stride(self, start, span):
        end = start + timedelta(days=span)
        dates = generate_dates(start, end, SchedulePattern.EVERY_OTHER_DAY)

        assert len(dates) == span // 2 + 1
        assert dates[0] == start
        assert all((b - a).days == 2 for a, b in zip(dates, dates[1:]))
        assert dates[-1] <= end


class TestCustom:
    def test_filters_sorts_and_deduplicates(self):
        dates = generate_dates(
            date(2025, 1, 1),
            date(2025, 1, 10),
            SchedulePattern.CUSTOM,
            [date(2025, 1, 7), date(2025, 1, 2), date(2025, 1, 7), date(2025, 2, 1)],
        )
        assert dates == (date(2025, 1, 2), date(2025, 1, 7))

    def test_empty_custom_list_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            generate_dates(date(2025, 1, 1), date(2025, 1, 10), SchedulePattern.CUSTOM, [])
        assert exc_info.value.field == "custom_dates"

    def test_no_date_in_range_rejected(self):
        with pytest.raises(ValidationError):
            generate_dates(
                date(2025, 1, 1), date(2025, 1, 10), SchedulePattern.CUSTOM, [date(2025, 3, 1)]
            )

    @given(
        start=starts,
        span=spans,
        offsets=st.lists(st.integers(min_value=0, max_value=120), min_size=1, max_size=30),
    )
    @settings(max_examples=100)
    def test_never_invents_dates(self, start, span, offsets):
        end = start + timedelta(days=span)
        supplied = [start + timedelta(days=o) for o in offsets]
        if not any(start <= d <= end for d in supplied):
            return
        dates = generate_dates(start, end, SchedulePattern.CUSTOM, supplied)

        assert set(dates) <= set(supplied)
        assert list(dates) == sorted(set(dates))
        assert all(start <= d <= end for d in dates)


class TestValidation:
    def test_end_before_start(self):
        with pytest.raises(ValidationError) as exc_info:
            generate_dates(date(2025, 1, 10), date(2025, 1, 1), SchedulePattern.EVERY_DAY)
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_pattern_aliases(self):
        assert SchedulePattern.parse("every-other-day") is SchedulePattern.EVERY_OTHER_DAY
        assert SchedulePattern.parse("EVERY_DAY") is SchedulePattern.EVERY_DAY
        assert SchedulePattern.parse(SchedulePattern.CUSTOM) is SchedulePattern.CUSTOM

    def test_unknown_pattern(self):
        with pytest.raises(ValidationError):
            generate_dates(date(2025, 1, 1), date(2025, 1, 10), "weekdays_only")

    @given(start=starts, span=spans, pattern=st.sampled_from(list(SchedulePattern)[:2]))
    @settings(max_examples=50)
    def test_same_input_same_output(self, start, span, pattern):
        end = start + timedelta(days=span)
        assert generate_dates(start, end, pattern) == generate_dates(start, end, pattern)


class TestPricing:
    def test_known_combo(self):
        assert resolve_combo_price("Комбо 25", DEFAULT_COMBO_PRICES) == Decimal("25.00")
        assert resolve_combo_price("Комбо 35", DEFAULT_COMBO_PRICES) == Decimal("35.00")

    def test_unknown_combo(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_combo_price("Комбо 99", DEFAULT_COMBO_PRICES)
        assert exc_info.value.field == "combo_type"

    def test_price_schedule_pairs_every_date(self):
        dates = (date(2025, 1, 1), date(2025, 1, 2))
        assert price_schedule(dates, "Комбо 35", DEFAULT_COMBO_PRICES) == (
            (date(2025, 1, 1), Decimal("35.00")),
            (date(2025, 1, 2), Decimal("35.00")),
        )


class TestIsoWeeks:
    def test_week_spanning_new_year(self):
        assert iso_week_bounds(date(2025, 1, 5)) == (date(2024, 12, 30), date(2025, 1, 5))
        assert iso_week_label(date(2024, 12, 30)) == "2025-W01"

    def test_monday_starts_new_week(self):
        assert iso_week_bounds(date(2025, 1, 6)) == (date(2025, 1, 6), date(2025, 1, 12))
        assert iso_week_label(date(2025, 1, 6)) == "2025-W02"

    @given(day=starts)
    def test_bounds_contain_day(self, day):
        monday, sunday = iso_week_bounds(day)
        assert monday.isoweekday() == 1
        assert (sunday - monday).days == 6
        assert monday <= day <= sunday
