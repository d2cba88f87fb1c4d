"""Freeze Engine Module (``meal_modules.freeze``)."""

from meal_modules.freeze.models import (
    FreezeHistoryEntry,
    FreezeInfo,
    FreezePeriodResult,
    FreezeRecord,
    FreezeResult,
    UnfreezeResult,
)

__all__ = [
    "FreezeHistoryEntry",
    "FreezeInfo",
    "FreezePeriodResult",
    "FreezeRecord",
    "FreezeResult",
    "UnfreezeResult",
]
