"""
Budget Ledger Service (``meal_modules.budget.service``).

Responsibility
--------------
Owns the project spend counter: every spend passes through ``reserve()``
and every give-back through ``release()``.  Also answers the same-day
cutoff question for a project, derives spend from persisted facts for
reconciliation and builds the admin dashboard.

Architecture position
---------------------
**Modules layer**.  Used by the Freeze Engine, the Compensation Ledger and
the Subscription Orchestrator.  Arithmetic lives in
``meal_engines.budget`` and ``meal_engines.cutoff``; this service supplies
the numbers and enforces the decision in the database.

Invariants enforced
-------------------
* ``spent <= budget + overdraft_limit`` after every accepted reserve.  The
  check and the increment happen under the project row lock (``FOR
  UPDATE``; ``BEGIN IMMEDIATE`` on SQLite), so concurrent reservations
  cannot both consume the same headroom.
* Headroom is compared in ``Decimal``, never in SQL arithmetic.
* A reserve that does not fit changes nothing and does not touch project
  status.
* Changes to an assignment dated project-local today require local time
  strictly before the cutoff unless an administrative override is set.

Failure modes
-------------
* ``BudgetExceededError`` -- spend would exceed budget + overdraft.
* ``CutoffPassedError`` -- same-day change at or after cutoff.
* ``ProjectNotFoundError`` -- unknown or foreign project.
* ``ValidationError`` -- negative amount.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meal_config.schema import EngineConfig
from meal_engines.budget import BudgetPosition, compute_position, fits_headroom
from meal_engines.cutoff import CutoffDecision, evaluate_cutoff
from meal_kernel.db.types import ZERO, round_money, to_money
from meal_kernel.domain.clock import Clock, SystemClock, local_now, local_today
from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import BudgetExceededError, CutoffPassedError, ValidationError
from meal_kernel.logging_config import LogContext, get_logger
from meal_kernel.models import Project
from meal_kernel.selectors.assignment_selector import AssignmentSelector
from meal_kernel.services.base import BaseService, translate_storage_errors
from meal_modules.budget.models import Dashboard, ProjectBudget, SpendReconciliation
from meal_modules.compensation.orm import CompensationTransactionModel

logger = get_logger("modules.budget.service")


class BudgetLedger(BaseService):
    """
    Project budget, spend counter and cutoff gate.

    Contract
    --------
    * ``reserve``/``release`` flush within the caller's transaction; the
      caller commits.
    * ``check_cutoff`` is the single place the same-day rule is decided.

    Guarantees
    ----------
    * A rejected reserve leaves ``spent`` untouched.
    * Clock is injectable; "today" is always project-local.

    Non-goals
    ---------
    * Does NOT move a project to BLOCKED_DEBT; it only signals.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._config = config or EngineConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._assignments = AssignmentSelector(session)
        self.optimistic_retry_limit = self._config.optimistic_retry_limit

    @property
    def clock(self) -> Clock:
        return self._clock

    # =========================================================================
    # Project-local time and cutoff
    # =========================================================================

    def project_now(self, project: Project) -> datetime:
        return local_now(self._clock, project.timezone)

    def project_today(self, project: Project) -> date:
        return local_today(self._clock, project.timezone)

    def check_cutoff(
        self,
        project: Project,
        target_date: date,
        admin_override: bool = False,
    ) -> CutoffDecision:
        """
        Gate a change to an assignment dated ``target_date``.

        Only project-local today is gated; the change is allowed iff the
        local time of day is strictly before the project's cutoff.
        """
        decision = evaluate_cutoff(target_date, self.project_now(project), project.cutoff_time)
        if not decision.blocks:
            return decision
        if admin_override:
            logger.info(
                "cutoff_override_used",
                extra={
                    "project_id": project.id,
                    "target_date": target_date,
                    "cutoff_time": project.cutoff_time,
                },
            )
            return decision
        logger.info(
            "cutoff_rejected",
            extra={
                "project_id": project.id,
                "target_date": target_date,
                "cutoff_time": project.cutoff_time,
                "local_now": decision.local_now,
            },
        )
        raise CutoffPassedError(project.id, target_date, project.cutoff_time, decision.local_now)

    def is_cutoff_passed(self, project: Project) -> bool:
        return evaluate_cutoff(
            self.project_today(project), self.project_now(project), project.cutoff_time
        ).is_cutoff_passed

    # =========================================================================
    # Spend counter
    # =========================================================================

    def reserve(self, ctx: RequestContext, project_id: UUID, amount: Decimal) -> Decimal:
        """
        Add ``amount`` to the project's spend if it fits the headroom.

        Spending exactly the remaining headroom succeeds.  The comparison is
        done on Decimals read under the project row lock, never in SQL, so
        backends that keep NUMERIC as binary floats cannot reject an exact
        fit.

        Returns:
            The new spend counter.
        """
        amount = self._validated_amount(amount)
        project = self._load_project(ctx, project_id, for_update=amount != ZERO)
        if amount == ZERO:
            return to_money(project.spent)

        position = self._position(project)
        if not fits_headroom(position.spent, amount, position.available_budget):
            logger.warning(
                "budget_reserve_rejected",
                extra={
                    "project_id": project.id,
                    "requested": amount,
                    "spent": position.spent,
                    "available_budget": position.available_budget,
                },
            )
            raise BudgetExceededError(
                project.id, amount, position.spent, position.available_budget
            )

        spent = self._write_spent(project, position.spent + amount, "budget_reserve")
        logger.info(
            "budget_reserved",
            extra={"project_id": project.id, "amount": amount, "spent": spent},
        )
        return spent

    def release(self, ctx: RequestContext, project_id: UUID, amount: Decimal) -> Decimal:
        """Give ``amount`` back to the project's headroom."""
        amount = self._validated_amount(amount)
        project = self._load_project(ctx, project_id, for_update=amount != ZERO)
        if amount == ZERO:
            return to_money(project.spent)

        spent = self._write_spent(project, to_money(project.spent) - amount, "budget_release")
        logger.info(
            "budget_released",
            extra={"project_id": project.id, "amount": amount, "spent": spent},
        )
        return spent

    def _write_spent(self, project: Project, spent: Decimal, operation: str) -> Decimal:
        project.spent = round_money(spent)
        with translate_storage_errors(operation):
            self.session.flush()
        return project.spent

    def adjust(self, ctx: RequestContext, project_id: UUID, delta: Decimal) -> Decimal:
        """Reserve a positive delta, release a negative one."""
        delta = round_money(delta)
        if delta > 0:
            return self.reserve(ctx, project_id, delta)
        return self.release(ctx, project_id, -delta)

    @staticmethod
    def _validated_amount(amount: Decimal) -> Decimal:
        amount = round_money(to_money(amount))
        if amount < 0:
            raise ValidationError("amount", f"must not be negative, got {amount}")
        return amount

    # =========================================================================
    # Reads
    # =========================================================================

    def _position(self, project: Project) -> BudgetPosition:
        return compute_position(
            budget=project.budget,
            overdraft_limit=project.overdraft_limit,
            spent=to_money(project.spent),
            low_budget_threshold=self._config.low_budget_threshold,
        )

    def get_position(self, ctx: RequestContext, project_id: UUID) -> ProjectBudget:
        project = self._load_project(ctx, project_id)
        return ProjectBudget.from_position(project.id, project.currency_code, self._position(project))

    def recompute_spent(self, ctx: RequestContext, project_id: UUID) -> Decimal:
        """Spend derived from facts: committed order prices plus company-paid compensation."""
        project = self._load_project(ctx, project_id)
        orders = self._assignments.committed_order_spend(project.id)
        compensation = self.session.execute(
            select(func.sum(CompensationTransactionModel.company_paid)).where(
                CompensationTransactionModel.project_id == project.id
            )
        ).scalar_one()
        return round_money(orders + to_money(compensation))

    def reconcile(self, ctx: RequestContext, project_id: UUID) -> SpendReconciliation:
        project = self._load_project(ctx, project_id)
        report = SpendReconciliation(
            project_id=project.id,
            recorded_spent=to_money(project.spent),
            derived_spent=self.recompute_spent(ctx, project.id),
        )
        if not report.is_consistent:
            logger.warning(
                "budget_spend_drift",
                extra={
                    "project_id": project.id,
                    "recorded_spent": report.recorded_spent,
                    "derived_spent": report.derived_spent,
                    "drift": report.drift,
                },
            )
        return report

    def get_dashboard(self, ctx: RequestContext, project_id: UUID | None = None) -> Dashboard:
        """
        Admin dashboard for one project, or for every project of the company.

        Forecast is the value of live orders dated today or later.  The
        company-wide view takes cutoff and timezone from configuration.
        """
        with LogContext.bind(**ctx.log_fields()):
            if project_id is not None:
                project = self._load_project(ctx, project_id)
                projects = [project]
                tz_name = project.timezone
                cutoff_time = project.cutoff_time
            else:
                stmt = select(Project).where(Project.company_id == ctx.company_id)
                if ctx.project_id is not None:
                    stmt = stmt.where(Project.id == ctx.project_id)
                projects = list(self.session.execute(stmt).scalars())
                tz_name = self._config.default_timezone
                cutoff_time = self._config.default_cutoff_time

            today = local_today(self._clock, tz_name)
            now = local_now(self._clock, tz_name)
            counts = self._assignments.order_counts([p.id for p in projects], today)
            position = compute_position(
                budget=sum((p.budget for p in projects), ZERO),
                overdraft_limit=sum((p.overdraft_limit for p in projects), ZERO),
                spent=sum((to_money(p.spent) for p in projects), ZERO),
                low_budget_threshold=self._config.low_budget_threshold,
            )
            dashboard = Dashboard(
                total_budget=position.budget,
                forecast=counts.forecast,
                total_orders=counts.total_orders,
                active_orders=counts.active_orders,
                paused_orders=counts.paused_orders,
                budget_consumption_percent=position.consumption_percent,
                available_budget=position.available_budget,
                is_low_budget=position.is_low_budget,
                low_budget_warning=position.low_budget_warning,
                cutoff_time=cutoff_time,
                is_cutoff_passed=evaluate_cutoff(today, now, cutoff_time).is_cutoff_passed,
                timezone=tz_name,
            )
            logger.debug(
                "dashboard_built",
                extra={"project_count": len(projects), "total_orders": counts.total_orders},
            )
            return dashboard
