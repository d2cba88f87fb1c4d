"""
Compensation Ledger Module (``meal_modules.compensation``).

Responsibility
--------------
Daily allowance accounting for compensation projects.  The service
(``CompensationLedger``) lives in ``meal_modules.compensation.service``.
"""

from meal_modules.compensation.models import (
    CompensationBalance,
    CompensationSettings,
    CompensationTransaction,
    DailySummary,
    EmployeeDaySummary,
    TransactionResult,
)

__all__ = [
    "CompensationBalance",
    "CompensationSettings",
    "CompensationTransaction",
    "DailySummary",
    "EmployeeDaySummary",
    "TransactionResult",
]
