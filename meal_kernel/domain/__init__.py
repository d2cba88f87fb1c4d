"""
Pure domain layer.

Contains the injectable clock, the explicit request context and the
read-side DTOs.  Nothing here touches the database.
"""

from meal_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    get_zone,
    local_now,
    local_today,
)
from meal_kernel.domain.context import RequestContext
from meal_kernel.domain.dtos import CalendarDay, OrderCounts, OrderView

__all__ = [
    "CalendarDay",
    "Clock",
    "DeterministicClock",
    "OrderCounts",
    "OrderView",
    "RequestContext",
    "SystemClock",
    "get_zone",
    "local_now",
    "local_today",
]
