"""
Budget Ledger Module (``meal_modules.budget``).

Responsibility
--------------
Project budget envelope: the spend counter moved by reserve/release, the
same-day cutoff gate, spend reconciliation and the admin dashboard.
``BudgetLedger`` lives in ``meal_modules.budget.service``.
"""

from meal_modules.budget.models import Dashboard, ProjectBudget, SpendReconciliation

__all__ = [
    "Dashboard",
    "ProjectBudget",
    "SpendReconciliation",
]
