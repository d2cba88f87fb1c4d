"""
SQLAlchemy ORM persistence models for the Compensation module.

Responsibility
--------------
Persist processed compensation transactions and the per-day rollover
snapshots written by the explicit rollover recompute.  The full daily
balance (used, remaining) is never stored; it is derived from the
transactions of the day.

Invariants enforced
-------------------
* ``amount = company_paid + employee_paid`` and both portions are
  non-negative (check constraints).
* One rollover snapshot per (employee, balance_date).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from meal_kernel.db.base import TrackedBase, UUIDString


class CompensationTransactionModel(TrackedBase):
    """
    One meal purchase split between company and employee.

    Maps to ``CompensationTransaction`` in
    ``meal_modules.compensation.models``.
    """

    __tablename__ = "compensation_transactions"

    __table_args__ = (
        CheckConstraint("company_paid >= 0", name="ck_comp_company_paid_non_negative"),
        CheckConstraint("employee_paid >= 0", name="ck_comp_employee_paid_non_negative"),
        CheckConstraint(
            "abs(amount - company_paid - employee_paid) < 0.005", name="ck_comp_amount_split"
        ),
        Index("idx_comp_tx_employee_date", "employee_id", "transaction_date"),
        Index("idx_comp_tx_project_date", "project_id", "transaction_date"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("employees.id"), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("projects.id"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    company_paid: Mapped[Decimal] = mapped_column(nullable=False)
    employee_paid: Mapped[Decimal] = mapped_column(nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    restaurant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        from meal_modules.compensation.models import CompensationTransaction

        return CompensationTransaction(
            id=self.id,
            employee_id=self.employee_id,
            project_id=self.project_id,
            amount=self.amount,
            company_paid=self.company_paid,
            employee_paid=self.employee_paid,
            transaction_date=self.transaction_date,
            transaction_time=self.transaction_time,
            restaurant_name=self.restaurant_name,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"<CompensationTransaction {self.transaction_date} {self.amount}>"


class CompensationBalanceModel(TrackedBase):
    """
    Accumulated rollover carried into ``balance_date``.

    Written only by ``CompensationLedger.roll_over``; recomputing the same
    day overwrites the row with the same value.
    """

    __tablename__ = "compensation_balances"

    __table_args__ = (
        UniqueConstraint("employee_id", "balance_date", name="uq_comp_balance_employee_date"),
    )

    employee_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("employees.id"), nullable=False)
    project_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("projects.id"), nullable=False)
    balance_date: Mapped[date] = mapped_column(Date, nullable=False)
    accumulated_rollover: Mapped[Decimal] = mapped_column(nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<CompensationBalance {self.balance_date} rollover={self.accumulated_rollover}>"
