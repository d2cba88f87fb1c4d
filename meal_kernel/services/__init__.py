"""Kernel service infrastructure shared by the engine modules."""

from meal_kernel.services.base import BaseService, translate_storage_errors
from meal_kernel.services.lock_service import LockManager, get_lock_manager

__all__ = ["BaseService", "LockManager", "get_lock_manager", "translate_storage_errors"]
