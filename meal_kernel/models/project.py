"""
Module: meal_kernel.models.project
Responsibility: ORM persistence for a company's delivery project -- the
    budget envelope, the delivery address, the local timezone and cutoff,
    and the compensation allowance settings.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - The delivery address is immutable once the row exists; assigning a
      different value raises InvalidStateError.
    - spent is only moved by the Budget Ledger under the project row lock, which
      keeps spent <= budget + overdraft_limit for every accepted spend.

Failure modes:
    - InvalidStateError on address change.
"""

from datetime import time
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Float, Index, String, Time
from sqlalchemy.orm import Mapped, mapped_column, validates

from meal_kernel.db.base import TrackedBase, UUIDString
from meal_kernel.db.types import status_type
from meal_kernel.exceptions import InvalidStateError


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    BLOCKED_DEBT = "blocked_debt"
    ARCHIVED = "archived"


class ServiceType(str, Enum):
    LUNCH = "lunch"
    COMPENSATION = "compensation"


_ADDRESS_FIELDS = ("address_name", "address_full", "address_latitude", "address_longitude")


class Project(TrackedBase):
    """
    A delivery location of a company, with its own budget and schedule.

    Contract:
        Every employee belongs to exactly one project and every order is
        delivered to its project's address.  Cutoff and week boundaries are
        evaluated in ``timezone``.

    Non-goals:
        - Does not transition itself to BLOCKED_DEBT; the Budget Ledger only
          signals BudgetExceededError.
    """

    __tablename__ = "projects"

    __table_args__ = (Index("idx_project_company", "company_id"),)

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    address_name: Mapped[str] = mapped_column(String(200), nullable=False)
    address_full: Mapped[str] = mapped_column(String(500), nullable=False)
    address_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    budget: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    overdraft_limit: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    spent: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)

    currency_code: Mapped[str] = mapped_column(String(3), default="TJS", nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Dushanbe", nullable=False)
    cutoff_time: Mapped[time] = mapped_column(Time, default=time(10, 30), nullable=False)

    status: Mapped[ProjectStatus] = mapped_column(
        status_type(ProjectStatus),
        default=ProjectStatus.ACTIVE,
        nullable=False,
    )

    # Comma-joined ServiceType values
    service_types_raw: Mapped[str] = mapped_column(
        "service_types",
        String(100),
        default=ServiceType.LUNCH.value,
        nullable=False,
    )

    compensation_daily_limit: Mapped[Decimal] = mapped_column(
        default=Decimal("0.00"), nullable=False
    )
    compensation_rollover_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    @validates(*_ADDRESS_FIELDS)
    def _freeze_address(self, key, value):
        current = self.__dict__.get(key)
        if self.id is not None and key in self.__dict__ and current is not None and current != value:
            raise InvalidStateError("project", self.id, "address_set", f"change {key}")
        return value

    @property
    def service_types(self) -> frozenset[ServiceType]:
        return frozenset(
            ServiceType(part) for part in self.service_types_raw.split(",") if part
        )

    @service_types.setter
    def service_types(self, values) -> None:
        self.service_types_raw = ",".join(sorted(ServiceType(v).value for v in values))

    def offers(self, service_type: ServiceType) -> bool:
        return service_type in self.service_types

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Project {self.name}: {self.status}>"
