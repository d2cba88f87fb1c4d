"""
Compensation Ledger Service (``meal_modules.compensation.service``).

Responsibility
--------------
Per-employee daily allowance accounting for compensation projects:
splits each meal purchase between company and employee, keeps the
optional rollover of unused allowance and reports daily summaries.

Architecture position
---------------------
**Modules layer**.  Split and rollover arithmetic lives in
``meal_engines.compensation``; the company-paid portion of every
transaction is reserved against the project budget through the
``BudgetLedger``.

Invariants enforced
-------------------
* ``amount == company_paid + employee_paid`` with both portions >= 0.
* ``company_paid == min(amount, max(0, remaining_today))`` where
  ``remaining_today = daily_limit + accumulated_rollover - used_today``.
* Transactions of one employee are serialized (keyed in-process lock,
  then the employee row lock held until the caller commits), so two
  concurrent purchases cannot both draw the same remaining allowance.
* ``roll_over`` is a pure recompute from one day's facts: running it
  twice for the same day writes the same snapshot.

Failure modes
-------------
* ``ValidationError`` -- non-positive amount, employee outside the
  project, negative daily limit.
* ``InvalidStateError`` -- project does not offer compensation, or the
  employee is inactive.
* ``BudgetExceededError`` -- company-paid portion does not fit the budget.
* ``LockTimeoutError`` -- employee lock not acquired in time.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meal_config.schema import EngineConfig
from meal_engines.compensation import next_day_rollover, remaining_allowance, split_transaction
from meal_kernel.db.types import ZERO, round_money, to_money
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import InvalidStateError, ValidationError
from meal_kernel.logging_config import LogContext, get_logger
from meal_kernel.models import Employee, Project, ServiceType
from meal_kernel.services.lock_service import LockManager, get_lock_manager
from meal_kernel.services.base import BaseService
from meal_modules.budget.service import BudgetLedger
from meal_modules.compensation.models import (
    CompensationBalance,
    CompensationSettings,
    CompensationTransaction,
    DailySummary,
    EmployeeDaySummary,
    TransactionResult,
)
from meal_modules.compensation.orm import CompensationBalanceModel, CompensationTransactionModel

logger = get_logger("modules.compensation.service")


class CompensationLedger(BaseService):
    """
    Daily-limit accounting with optional rollover.

    Contract
    --------
    * All days are project-local calendar days.
    * Mutations flush within the caller's transaction.

    Guarantees
    ----------
    * A failed transaction (budget, validation) persists nothing.
    * Balances are derived on read from the day's transactions plus the
      rollover snapshot; only the snapshot is stored.

    Non-goals
    ---------
    * No payment capture or restaurant settlement.
    """

    def __init__(
        self,
        session: Session,
        budget_ledger: BudgetLedger | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        lock_manager: LockManager | None = None,
    ):
        super().__init__(session)
        self._config = config or EngineConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._budget = budget_ledger or BudgetLedger(session, self._config, self._clock)
        self._locks = lock_manager or get_lock_manager(self._config.lock_timeout_seconds)
        self.optimistic_retry_limit = self._config.optimistic_retry_limit

    # =========================================================================
    # Transactions
    # =========================================================================

    def process_transaction(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        project_id: UUID,
        amount: Decimal,
        restaurant_name: str | None = None,
        description: str | None = None,
    ) -> TransactionResult:
        """
        Record one meal purchase and split it between company and employee.

        The company pays up to the remaining allowance; the employee pays
        the rest.  The company-paid portion is reserved against the
        project budget.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount", f"must be positive, got {amount}")

        with LogContext.bind(**ctx.log_fields(), employee_id=employee_id):
            with self._locks.hold("employee", employee_id):
                return self._atomic(
                    "process_compensation_transaction",
                    lambda: self._process(
                        ctx, employee_id, project_id, amount, restaurant_name, description
                    ),
                )

    def _process(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        project_id: UUID,
        amount: Decimal,
        restaurant_name: str | None,
        description: str | None,
    ) -> TransactionResult:
        project, employee = self._load_pair(ctx, employee_id, project_id, "process compensation")
        day = self._budget.project_today(project)

        remaining = remaining_allowance(
            project.compensation_daily_limit,
            self._rollover_into(project, employee.id, day),
            self._used_on(employee.id, day),
        )
        split = split_transaction(amount, remaining)

        if split.company_paid > 0:
            self._budget.reserve(ctx, project.id, split.company_paid)

        now = self._clock.now_utc()
        row = CompensationTransactionModel(
            company_id=project.company_id,
            employee_id=employee.id,
            project_id=project.id,
            amount=split.amount,
            company_paid=split.company_paid,
            employee_paid=split.employee_paid,
            transaction_date=day,
            transaction_time=now,
            restaurant_name=restaurant_name,
            description=description,
            created_by_id=ctx.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "compensation_transaction_processed",
            extra={
                "transaction_id": row.id,
                "amount": split.amount,
                "company_paid": split.company_paid,
                "employee_paid": split.employee_paid,
                "remaining_before": split.remaining_before,
                "transaction_date": day,
            },
        )
        return TransactionResult(
            id=row.id,
            company_paid=split.company_paid,
            employee_paid=split.employee_paid,
            transaction_time=now,
            remaining_after=split.remaining_after,
        )

    # =========================================================================
    # Rollover
    # =========================================================================

    def roll_over(self, ctx: RequestContext, employee_id: UUID, day: date) -> CompensationBalance:
        """
        Recompute the rollover carried from ``day`` into the next day.

        Upserts the next day's snapshot; running it again for the same day
        writes the same value.
        """
        with LogContext.bind(**ctx.log_fields(), employee_id=employee_id):
            with self._locks.hold("employee", employee_id):
                def run() -> CompensationBalance:
                    employee = self._load_employee(ctx, employee_id, for_update=True)
                    project = self._load_project(ctx, employee.project_id)
                    return self._roll_over_one(ctx, project, employee, day)

                return self._atomic("compensation_roll_over", run)

    def roll_over_project(self, ctx: RequestContext, project_id: UUID, day: date) -> list[CompensationBalance]:
        """Run ``roll_over`` for every active employee of the project."""
        with LogContext.bind(**ctx.log_fields()):
            def run() -> list[CompensationBalance]:
                project = self._load_project(ctx, project_id)
                employees = self.session.execute(
                    select(Employee)
                    .where(Employee.project_id == project.id, Employee.is_active.is_(True))
                    .order_by(Employee.id)
                ).scalars()
                return [self._roll_over_one(ctx, project, employee, day) for employee in employees]

            balances = self._atomic("compensation_roll_over_project", run)
            logger.info(
                "compensation_project_rolled_over",
                extra={"project_id": project_id, "day": day, "employee_count": len(balances)},
            )
            return balances

    def _roll_over_one(
        self,
        ctx: RequestContext,
        project: Project,
        employee: Employee,
        day: date,
    ) -> CompensationBalance:
        carried = next_day_rollover(
            project.compensation_daily_limit,
            self._rollover_into(project, employee.id, day),
            self._used_on(employee.id, day),
            project.compensation_rollover_enabled,
        )
        next_day = day + timedelta(days=1)
        snapshot = self.session.execute(
            select(CompensationBalanceModel).where(
                CompensationBalanceModel.employee_id == employee.id,
                CompensationBalanceModel.balance_date == next_day,
            )
        ).scalar_one_or_none()
        if snapshot is None:
            snapshot = CompensationBalanceModel(
                employee_id=employee.id,
                project_id=project.id,
                balance_date=next_day,
                accumulated_rollover=carried,
                computed_at=self._clock.now_utc(),
                created_by_id=ctx.actor_id,
            )
            self.session.add(snapshot)
        else:
            snapshot.accumulated_rollover = carried
            snapshot.computed_at = self._clock.now_utc()
            snapshot.updated_by_id = ctx.actor_id
        self.session.flush()

        logger.info(
            "compensation_rolled_over",
            extra={"employee_id": employee.id, "from_day": day, "rollover": carried},
        )
        return self._balance(project, employee.id, next_day)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_balance(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        day: date | None = None,
    ) -> CompensationBalance:
        employee = self._load_employee(ctx, employee_id)
        project = self._load_project(ctx, employee.project_id)
        return self._balance(project, employee.id, day or self._budget.project_today(project))

    def get_daily_summary(self, ctx: RequestContext, project_id: UUID, day: date) -> DailySummary:
        """Totals of one project's transactions on one day, per employee."""
        project = self._load_project(ctx, project_id)
        rows = self.session.execute(
            select(
                CompensationTransactionModel.employee_id,
                Employee.full_name,
                func.count(CompensationTransactionModel.id),
                func.sum(CompensationTransactionModel.amount),
                func.sum(CompensationTransactionModel.company_paid),
                func.sum(CompensationTransactionModel.employee_paid),
            )
            .join(Employee, Employee.id == CompensationTransactionModel.employee_id)
            .where(
                CompensationTransactionModel.project_id == project.id,
                CompensationTransactionModel.transaction_date == day,
            )
            .group_by(CompensationTransactionModel.employee_id, Employee.full_name)
            .order_by(Employee.full_name)
        ).all()

        per_employee = tuple(
            EmployeeDaySummary(
                employee_id=employee_id,
                employee_name=name,
                transaction_count=int(count),
                total_amount=to_money(total),
                company_paid=to_money(company),
                employee_paid=to_money(own),
            )
            for employee_id, name, count, total, company, own in rows
        )
        return DailySummary(
            project_id=project.id,
            summary_date=day,
            transaction_count=sum(e.transaction_count for e in per_employee),
            total_amount=sum((e.total_amount for e in per_employee), ZERO),
            total_company_paid=sum((e.company_paid for e in per_employee), ZERO),
            total_employee_paid=sum((e.employee_paid for e in per_employee), ZERO),
            employees_used=len(per_employee),
            by_employee=per_employee,
        )

    def list_transactions(
        self,
        ctx: RequestContext,
        project_id: UUID,
        start: date | None = None,
        end: date | None = None,
        employee_id: UUID | None = None,
    ) -> list[CompensationTransaction]:
        project = self._load_project(ctx, project_id)
        stmt = select(CompensationTransactionModel).where(
            CompensationTransactionModel.project_id == project.id
        )
        if start is not None:
            stmt = stmt.where(CompensationTransactionModel.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(CompensationTransactionModel.transaction_date <= end)
        if employee_id is not None:
            stmt = stmt.where(CompensationTransactionModel.employee_id == employee_id)
        stmt = stmt.order_by(CompensationTransactionModel.transaction_time)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    # =========================================================================
    # Settings
    # =========================================================================

    def update_settings(
        self,
        ctx: RequestContext,
        project_id: UUID,
        daily_limit: Decimal,
        rollover_enabled: bool,
    ) -> CompensationSettings:
        daily_limit = to_money(daily_limit)
        if daily_limit < 0:
            raise ValidationError("daily_limit", f"must not be negative, got {daily_limit}")

        with LogContext.bind(**ctx.log_fields()):
            def run() -> CompensationSettings:
                project = self._load_project(ctx, project_id, for_update=True)
                project.compensation_daily_limit = daily_limit
                project.compensation_rollover_enabled = rollover_enabled
                project.updated_by_id = ctx.actor_id
                return CompensationSettings(project.id, daily_limit, rollover_enabled)

            settings = self._atomic("compensation_update_settings", run)
            logger.info(
                "compensation_settings_updated",
                extra={
                    "project_id": settings.project_id,
                    "daily_limit": settings.daily_limit,
                    "rollover_enabled": settings.rollover_enabled,
                },
            )
            return settings

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_pair(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        project_id: UUID,
        operation: str,
    ) -> tuple[Project, Employee]:
        project = self._load_project(ctx, project_id)
        if not project.offers(ServiceType.COMPENSATION):
            raise InvalidStateError(
                "project", project.id, project.service_types_raw, operation,
                "project does not offer compensation",
            )
        employee = self._load_employee(ctx, employee_id, for_update=True)
        if employee.project_id != project.id:
            raise ValidationError(
                "employee_id", f"employee {employee.id} does not belong to project {project.id}"
            )
        if not employee.is_active:
            raise InvalidStateError("employee", employee.id, "inactive", operation)
        return project, employee

    def _used_on(self, employee_id: UUID, day: date) -> Decimal:
        total = self.session.execute(
            select(func.sum(CompensationTransactionModel.company_paid)).where(
                CompensationTransactionModel.employee_id == employee_id,
                CompensationTransactionModel.transaction_date == day,
            )
        ).scalar_one()
        return to_money(total)

    def _rollover_into(self, project: Project, employee_id: UUID, day: date) -> Decimal:
        if not project.compensation_rollover_enabled:
            return ZERO
        value = self.session.execute(
            select(CompensationBalanceModel.accumulated_rollover).where(
                CompensationBalanceModel.employee_id == employee_id,
                CompensationBalanceModel.balance_date == day,
            )
        ).scalar_one_or_none()
        return to_money(value)

    def _balance(self, project: Project, employee_id: UUID, day: date) -> CompensationBalance:
        return CompensationBalance(
            employee_id=employee_id,
            balance_date=day,
            daily_limit=round_money(project.compensation_daily_limit),
            used_today=self._used_on(employee_id, day),
            accumulated_rollover=self._rollover_into(project, employee_id, day),
            rollover_enabled=project.compensation_rollover_enabled,
        )
