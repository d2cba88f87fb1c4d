"""
Subscription Orchestrator Module (``meal_modules.subscriptions``).

Responsibility
--------------
Subscription lifecycle (``service.SubscriptionOrchestrator``) and the
end-of-day job (``settlement.DailySettlement``).
"""

from meal_modules.subscriptions.models import (
    BulkAction,
    BulkActionResult,
    CompletionResult,
    CreateSubscriptionRequest,
    EmployeeScheduleSpec,
    SettlementResult,
    SubscriptionResult,
)

__all__ = [
    "BulkAction",
    "BulkActionResult",
    "CompletionResult",
    "CreateSubscriptionRequest",
    "EmployeeScheduleSpec",
    "SettlementResult",
    "SubscriptionResult",
]
