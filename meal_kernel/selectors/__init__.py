"""Read-only selectors."""

from meal_kernel.selectors.assignment_selector import AssignmentSelector
from meal_kernel.selectors.base import BaseSelector

__all__ = ["AssignmentSelector", "BaseSelector"]
