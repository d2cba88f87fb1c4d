"""
Module: meal_kernel.models.freeze_event
Responsibility: Append-only history of freeze and unfreeze actions.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are only inserted, never updated or deleted.
    - For every assignment, freezes - unfreezes is 1 while it is FROZEN and
      0 otherwise, so the weekly freeze count derived from this table
      matches the count derived from assignment status.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from meal_kernel.db.base import TrackedBase, UUIDString
from meal_kernel.db.types import status_type


class FreezeAction(str, Enum):
    FREEZE = "freeze"
    UNFREEZE = "unfreeze"


class FreezeEvent(TrackedBase):
    """One freeze or unfreeze of one assignment."""

    __tablename__ = "freeze_events"

    __table_args__ = (
        Index("idx_freeze_event_employee_date", "employee_id", "assignment_date"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    subscription_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assignment_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[FreezeAction] = mapped_column(status_type(FreezeAction), nullable=False)

    assignment_date: Mapped[date] = mapped_column(Date, nullable=False)
    replacement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<FreezeEvent {self.action} {self.assignment_date}>"
