"""
Daily Settlement (``meal_modules.subscriptions.settlement``).

Responsibility
--------------
End-of-day job: once a project's cutoff for a day has passed, that day's
live orders become DELIVERED; subscriptions whose last day is behind us
and that hold no live orders become COMPLETED.

Architecture position
---------------------
**Modules layer**.  Run by a scheduler per project; uses the Budget
Ledger only for project-local time and the cutoff rule.

Invariants enforced
-------------------
* A day is never settled before its cutoff.
* Settlement is idempotent: a second run finds nothing left to deliver.
* Delivery is spend-neutral (live and delivered orders both count).
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from meal_config.schema import EngineConfig
from meal_engines.cutoff import evaluate_cutoff
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import InvalidStateError
from meal_kernel.logging_config import LogContext, get_logger
from meal_kernel.models import (
    LIVE_STATUSES,
    Assignment,
    AssignmentStatus,
    Subscription,
    SubscriptionStatus,
)
from meal_kernel.services.base import BaseService
from meal_modules.budget.service import BudgetLedger
from meal_modules.subscriptions.models import CompletionResult, SettlementResult

logger = get_logger("modules.subscriptions.settlement")


class DailySettlement(BaseService):
    """Marks orders delivered and subscriptions completed."""

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        budget_ledger: BudgetLedger | None = None,
    ):
        super().__init__(session)
        self._config = config or EngineConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._budget = budget_ledger or BudgetLedger(session, self._config, self._clock)
        self.optimistic_retry_limit = self._config.optimistic_retry_limit

    def settle_day(self, ctx: RequestContext, project_id: UUID, day: date) -> SettlementResult:
        """Deliver every live order of ``day``; allowed once the day's cutoff passed."""

        def run() -> SettlementResult:
            project = self._load_project(ctx, project_id)
            decision = evaluate_cutoff(day, self._budget.project_now(project), project.cutoff_time)
            today = decision.local_now.date()
            if day > today or (day == today and not decision.is_cutoff_passed):
                raise InvalidStateError(
                    "project",
                    project.id,
                    "before_cutoff",
                    "settle day",
                    f"{day} cannot be settled before its cutoff {project.cutoff_time}",
                )

            orders = self.session.execute(
                select(Assignment)
                .where(
                    Assignment.project_id == project.id,
                    Assignment.assignment_date == day,
                    Assignment.status.in_(list(LIVE_STATUSES)),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
            for order in orders:
                order.status = AssignmentStatus.DELIVERED
                order.updated_by_id = ctx.actor_id
            self.session.flush()
            return SettlementResult(project_id=project.id, day=day, delivered_count=len(orders))

        with LogContext.bind(**ctx.log_fields()):
            result = self._atomic("settle_day", run)
            logger.info(
                "day_settled",
                extra={"day": day, "delivered_count": result.delivered_count},
            )
            return result

    def complete_finished_subscriptions(
        self,
        ctx: RequestContext,
        project_id: UUID,
        day: date,
    ) -> CompletionResult:
        """ACTIVE subscriptions that ended before ``day`` with no live orders become COMPLETED."""

        def run() -> CompletionResult:
            project = self._load_project(ctx, project_id)
            live_order = exists().where(
                Assignment.subscription_id == Subscription.id,
                Assignment.status.in_(list(LIVE_STATUSES)),
            )
            finished = self.session.execute(
                select(Subscription)
                .where(
                    Subscription.project_id == project.id,
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.end_date < day,
                    ~live_order,
                )
                .order_by(Subscription.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
            for subscription in finished:
                subscription.status = SubscriptionStatus.COMPLETED
                subscription.updated_by_id = ctx.actor_id
            self.session.flush()
            return CompletionResult(
                project_id=project.id,
                day=day,
                completed_subscription_ids=tuple(s.id for s in finished),
            )

        with LogContext.bind(**ctx.log_fields()):
            result = self._atomic("complete_finished_subscriptions", run)
            logger.info(
                "subscriptions_completed",
                extra={"day": day, "completed_count": result.completed_count},
            )
            return result
