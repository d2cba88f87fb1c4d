"""
Engine Configuration Schema (``meal_config.schema``).

Responsibility
--------------
Frozen dataclass describing every tunable of the engine: freeze limits,
budget warning threshold, minimum subscription length, the combo price
table, project defaults and concurrency bounds.

Invariants enforced
-------------------
* All fields validated in ``__post_init__``; invalid values raise
  ``ValueError`` with the field name.
* Prices and thresholds are ``Decimal``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from types import MappingProxyType
from typing import Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meal_kernel.logging_config import get_logger

logger = get_logger("config.schema")

DEFAULT_COMBO_PRICES: Mapping[str, Decimal] = MappingProxyType({
    "Комбо 25": Decimal("25.00"),
    "Комбо 35": Decimal("35.00"),
})


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for the meal engine."""

    max_freezes_per_week: int = 2
    low_budget_threshold: Decimal = Decimal("0.20")
    min_subscription_days: int = 5
    combo_prices: Mapping[str, Decimal] = field(default_factory=lambda: DEFAULT_COMBO_PRICES)
    default_timezone: str = "Asia/Dushanbe"
    default_cutoff_time: time = time(10, 30)
    default_currency: str = "TJS"
    lock_timeout_seconds: float = 10.0
    optimistic_retry_limit: int = 1

    def __post_init__(self):
        if self.max_freezes_per_week < 0:
            raise ValueError("max_freezes_per_week cannot be negative")
        if not Decimal("0") <= self.low_budget_threshold <= Decimal("1"):
            raise ValueError("low_budget_threshold must be between 0 and 1")
        if self.min_subscription_days < 1:
            raise ValueError("min_subscription_days must be at least 1")
        if not self.combo_prices:
            raise ValueError("combo_prices cannot be empty")
        for combo, price in self.combo_prices.items():
            if not isinstance(price, Decimal) or price <= 0:
                raise ValueError(f"combo_prices[{combo!r}] must be a positive Decimal")
        try:
            ZoneInfo(self.default_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"default_timezone {self.default_timezone!r} is not a known zone") from exc
        if len(self.default_currency) != 3:
            raise ValueError("default_currency must be a 3-letter code")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        if self.optimistic_retry_limit < 0:
            raise ValueError("optimistic_retry_limit cannot be negative")
        object.__setattr__(self, "combo_prices", MappingProxyType(dict(self.combo_prices)))
        logger.info("engine_config_initialized", extra={
            "max_freezes_per_week": self.max_freezes_per_week,
            "low_budget_threshold": self.low_budget_threshold,
            "min_subscription_days": self.min_subscription_days,
            "combo_count": len(self.combo_prices),
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()
