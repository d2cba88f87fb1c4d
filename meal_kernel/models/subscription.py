"""
Module: meal_kernel.models.subscription
Responsibility: ORM persistence for meal subscriptions and their daily
    assignments (one employee's order for one date).
Architecture position: Kernel > Models.  May import from db/ and sibling
    models only.

Invariants enforced:
    - end_date >= start_date.
    - total_days == (end_date - start_date + 1) - paused_days_count; each
      freeze extends end_date by one and adds one paused day, so a freeze
      never changes total_days.
    - end_date == original_end_date + number of FROZEN assignments
      (maintained by the Freeze Engine).
    - At most one non-cancelled assignment per (employee, date): partial
      unique index ``uq_assignment_employee_date_live``.
    - ``version`` is an optimistic concurrency token; a stale write raises
      StaleDataError, which the service layer retries once and then
      reports as OptimisticLockError.

Failure modes:
    - IntegrityError on a second live assignment for the same
      (employee, date).
    - StaleDataError on concurrent modification of a subscription.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meal_kernel.db.base import TrackedBase, UUIDString
from meal_kernel.db.types import status_type


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class AssignmentStatus(str, Enum):
    """
    Lifecycle status of a single day's order.

    Contract: see ``ORDER_TRANSITIONS``.  DELIVERED and CANCELLED are
    terminal; FROZEN only leaves through unfreeze.
    """

    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    FROZEN = "frozen"
    REPLACEMENT = "replacement"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


ORDER_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.PENDING: frozenset({
        AssignmentStatus.ACTIVE,
        AssignmentStatus.PAUSED,
        AssignmentStatus.FROZEN,
        AssignmentStatus.CANCELLED,
        AssignmentStatus.DELIVERED,
    }),
    AssignmentStatus.ACTIVE: frozenset({
        AssignmentStatus.PAUSED,
        AssignmentStatus.FROZEN,
        AssignmentStatus.CANCELLED,
        AssignmentStatus.DELIVERED,
    }),
    AssignmentStatus.PAUSED: frozenset({
        AssignmentStatus.ACTIVE,
        AssignmentStatus.CANCELLED,
    }),
    AssignmentStatus.FROZEN: frozenset({
        AssignmentStatus.ACTIVE,
        AssignmentStatus.PENDING,
    }),
    AssignmentStatus.REPLACEMENT: frozenset({
        AssignmentStatus.PAUSED,
        AssignmentStatus.CANCELLED,
        AssignmentStatus.DELIVERED,
    }),
    AssignmentStatus.DELIVERED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
}

# Orders that will still be delivered
LIVE_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
    AssignmentStatus.REPLACEMENT,
})

FREEZABLE_STATUSES = frozenset({AssignmentStatus.PENDING, AssignmentStatus.ACTIVE})

# Orders whose price counts against the project budget.  A frozen day's
# value lives on its replacement.
COMMITTED_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
    AssignmentStatus.PAUSED,
    AssignmentStatus.REPLACEMENT,
    AssignmentStatus.DELIVERED,
})


def can_transition(current: AssignmentStatus, target: AssignmentStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


class Subscription(TrackedBase):
    """
    A company's meal subscription for a project over a date range.

    Guarantees:
        - The subscription and its initial assignments are created in one
          flush by the Subscription Orchestrator.
        - Rows are never deleted; CANCELLED/COMPLETED are terminal.
    """

    __tablename__ = "subscriptions"

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_subscription_dates"),
        Index("idx_subscription_project", "project_id"),
        Index("idx_subscription_company_status", "company_id", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    original_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        status_type(SubscriptionStatus),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )

    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_days_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1 - self.paused_days_count

    @property
    def is_terminal(self) -> bool:
        return self.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.COMPLETED)

    def extend_by_one_day(self) -> None:
        self.end_date = self.end_date + timedelta(days=1)
        self.paused_days_count += 1

    def shrink_by_one_day(self) -> None:
        self.end_date = self.end_date - timedelta(days=1)
        self.paused_days_count -= 1

    def __repr__(self) -> str:
        return f"<Subscription {self.start_date}..{self.end_date}: {self.status}>"


class Assignment(TrackedBase):
    """
    One order for one date.

    Subscription orders carry both ``subscription_id`` and ``employee_id``;
    guest orders carry neither and name the guest instead.

    Freeze bookkeeping:
        A FROZEN order keeps the status it had before the freeze in
        ``status_before_freeze`` and points at its replacement through
        ``replacement_id``/``replacement_date``.  The replacement points
        back through ``replaces_id``.  Unfreeze clears all four fields.
    """

    __tablename__ = "assignments"

    __table_args__ = (
        Index(
            "uq_assignment_employee_date_live",
            "employee_id",
            "assignment_date",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index("idx_assignment_subscription", "subscription_id"),
        Index("idx_assignment_project_date", "project_id", "assignment_date"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    subscription_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("subscriptions.id"), nullable=True
    )

    employee_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=True
    )

    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    assignment_date: Mapped[date] = mapped_column(Date, nullable=False)

    combo_type: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[AssignmentStatus] = mapped_column(
        status_type(AssignmentStatus),
        default=AssignmentStatus.ACTIVE,
        nullable=False,
    )

    status_before_freeze: Mapped[AssignmentStatus | None] = mapped_column(
        status_type(AssignmentStatus), nullable=True
    )
    frozen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    freeze_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    replacement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    replacement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    replaces_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    subscription: Mapped[Subscription | None] = relationship(Subscription)

    @property
    def is_guest_order(self) -> bool:
        return self.subscription_id is None

    def __repr__(self) -> str:
        return f"<Assignment {self.assignment_date} {self.combo_type}: {self.status}>"
