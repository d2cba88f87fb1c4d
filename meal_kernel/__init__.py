"""
Meal Kernel

Core of the meal benefits engine:
- Subscription calendars expanded from recurrence patterns
- Freeze (skip-and-extend) without losing paid days
- Project budget ceilings with cutoff-time gating
- Per-employee compensation allowances with optional rollover
"""

__version__ = "0.1.0"
