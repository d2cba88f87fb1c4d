"""
Module: meal_kernel.models.employee
Responsibility: ORM persistence for an employee enrolled in meal benefits.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - An employee belongs to exactly one project (project_id NOT NULL).
    - An employee has no address of its own; delivery always resolves to
      the project's address.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meal_kernel.db.base import TrackedBase, UUIDString
from meal_kernel.models.project import Project


class Employee(TrackedBase):
    """An employee of a company, attached to one project."""

    __tablename__ = "employees"

    __table_args__ = (
        Index("idx_employee_project", "project_id"),
        Index("idx_employee_company", "company_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("projects.id"), nullable=False
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Per-employee spending cap overriding the project default (reporting only)
    budget_override_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    budget_override_period: Mapped[str | None] = mapped_column(String(20), nullable=True)

    project: Mapped[Project] = relationship(Project)

    @property
    def delivery_address(self) -> str:
        return self.project.address_full

    def __repr__(self) -> str:
        return f"<Employee {self.full_name}>"
