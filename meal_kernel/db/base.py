"""
Module: meal_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map that
    keeps money, timestamps and identifiers consistent across tables, and
    the TrackedBase mixin for audit columns.
Architecture position: Kernel > DB.  Lowest-level import target in the
    kernel.  ALL model files import from here.  MUST NOT import from
    models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated key.
    - Money precision: Decimal maps to Numeric(18, 2).  Prices, budgets
      and compensation amounts are never floats.
    - Audit columns: TrackedBase records who created/updated a row and when.

Failure modes:
    - IntegrityError on duplicate UUID (protected by the PK constraint).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as String(36) so the schema runs on PostgreSQL and SQLite.

    Guarantees:
        - UUID -> str on bind, str -> UUID on result.
        - cache_ok=True enables statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all meal engine models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase) and gets a uuid4
        primary key plus the shared type_annotation_map.

    Guarantees:
        - Decimal maps to Numeric(18, 2) -- two-place currency amounts.
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Guarantees:
        - created_at is set by the server on INSERT.
        - updated_at is refreshed on every UPDATE.
        - created_by_id is required: every row has an acting user.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
