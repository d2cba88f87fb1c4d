"""Domain models for the meal kernel."""

from meal_kernel.models.employee import Employee
from meal_kernel.models.freeze_event import FreezeAction, FreezeEvent
from meal_kernel.models.project import Project, ProjectStatus, ServiceType
from meal_kernel.models.subscription import (
    COMMITTED_STATUSES,
    FREEZABLE_STATUSES,
    LIVE_STATUSES,
    ORDER_TRANSITIONS,
    Assignment,
    AssignmentStatus,
    Subscription,
    SubscriptionStatus,
    can_transition,
)

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "COMMITTED_STATUSES",
    "Employee",
    "FREEZABLE_STATUSES",
    "FreezeAction",
    "FreezeEvent",
    "LIVE_STATUSES",
    "ORDER_TRANSITIONS",
    "Project",
    "ProjectStatus",
    "ServiceType",
    "Subscription",
    "SubscriptionStatus",
    "can_transition",
]
