"""
Meal Modules.

Component layers over the meal kernel and engines.  Each module contains:
- Domain models (frozen result and request objects)
- ORM models where the module owns tables
- A service that owns the module's operations

Modules:
- Budget: project spend counter, cutoff gate, admin dashboard
- Compensation: daily allowance split, rollover, daily summaries
- Freeze: freeze/unfreeze with replacement days, weekly limits
- Subscriptions: creation, bulk actions, guest orders, daily settlement

Services are imported from their ``service`` modules directly; package
imports only pull in the domain models.
"""

from meal_modules import (
    budget,
    compensation,
    freeze,
    subscriptions,
)

__all__ = [
    "budget",
    "compensation",
    "freeze",
    "subscriptions",
]
