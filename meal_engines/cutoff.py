"""
meal_engines.cutoff -- Same-day cutoff decision.

A change to an assignment dated project-local today is allowed only while
the local time of day is strictly before the project's cutoff.  Any other
date is not gated by the cutoff.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time


@dataclass(frozen=True)
class CutoffDecision:
    target_date: date
    local_now: datetime
    cutoff_time: time

    @property
    def is_same_day(self) -> bool:
        return self.target_date == self.local_now.date()

    @property
    def is_cutoff_passed(self) -> bool:
        """Cutoff passed for today; allowed iff time of day < cutoff."""
        return self.local_now.time().replace(tzinfo=None) >= self.cutoff_time

    @property
    def blocks(self) -> bool:
        return self.is_same_day and self.is_cutoff_passed


def evaluate_cutoff(target_date: date, local_now: datetime, cutoff_time: time) -> CutoffDecision:
    return CutoffDecision(target_date=target_date, local_now=local_now, cutoff_time=cutoff_time)
