"""Database layer - engine, base classes and column types."""

from meal_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from meal_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from meal_kernel.db.types import Currency, Money, round_money, to_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Currency",
    "round_money",
    "to_money",
]
