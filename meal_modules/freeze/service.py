"""
Freeze Engine Service (``meal_modules.freeze.service``).

Responsibility
--------------
Turns "skip this day" and "skip these days" requests into assignment
state changes.  A frozen day keeps its paid value: a REPLACEMENT order is
appended after the subscription's current end and the subscription is
extended by one day.  Unfreeze is the exact inverse.

Architecture position
---------------------
**Modules layer**.  Depends on the Calendar Generator for ISO week
bucketing and on the ``BudgetLedger`` for the same-day cutoff gate.  The
Subscription Orchestrator delegates its freeze entry points here.

Invariants enforced
-------------------
* Every FROZEN order has exactly one REPLACEMENT order dated after the
  subscription's original end date, created with the same combo and
  price.
* ``end_date == original_end_date + number of FROZEN orders`` of the
  subscription; ``total_days`` never changes through freeze/unfreeze.
  When unfreeze frees a slot before the end, the latest replacement moves
  into it.
* Freeze then unfreeze restores end date, status and freeze fields.  A
  combo change made on the replacement is carried back to the order.
* At most ``max_freezes_per_week`` FROZEN orders per employee per ISO
  week (Monday..Sunday of project-local dates).
* Freeze and unfreeze are spend-neutral: the frozen order stops counting
  and its replacement starts counting at the same price, and back.
* Rows are locked subscription first, then its orders.

Failure modes
-------------
* ``FreezeLimitExceededError`` -- weekly maximum reached.
* ``InvalidStateError`` -- order not freezable/unfreezable, past-dated,
  subscription not ACTIVE, replacement already consumed, guest order.
* ``CutoffPassedError`` -- today's order at or after cutoff.
* ``ValidationError`` -- period with start after end, unknown read path.
* ``OrderNotFoundError`` / ``EmployeeNotFoundError`` -- unknown or foreign id.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_config.schema import EngineConfig
from meal_engines.calendar import iso_week_bounds, iso_week_label
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import (
    FreezeLimitExceededError,
    InvalidStateError,
    ValidationError,
)
from meal_kernel.logging_config import LogContext, get_logger
from meal_kernel.models import (
    FREEZABLE_STATUSES,
    LIVE_STATUSES,
    Assignment,
    AssignmentStatus,
    FreezeAction,
    FreezeEvent,
    Subscription,
    SubscriptionStatus,
)
from meal_kernel.selectors.assignment_selector import AssignmentSelector
from meal_kernel.services.base import BaseService
from meal_kernel.services.lock_service import LockManager, get_lock_manager
from meal_modules.budget.service import BudgetLedger
from meal_modules.freeze.models import (
    FreezeHistoryEntry,
    FreezeInfo,
    FreezePeriodResult,
    FreezeRecord,
    FreezeResult,
    UnfreezeResult,
)

logger = get_logger("modules.freeze.service")

FREEZE_RECORD_SOURCES = ("assignments", "history")


class FreezeEngine(BaseService):
    """
    Freeze, unfreeze and period freeze of subscription orders.

    Contract
    --------
    * Every mutating call runs in one savepoint: a failure leaves no
      partial freeze behind.
    * ``freeze_period`` freezes in ascending date order and is all or
      nothing.

    Guarantees
    ----------
    * Weekly freeze counts are derived on read; nothing is cached.
    * Clock is injectable; "today" is project-local.

    Non-goals
    ---------
    * Does NOT notify anyone about freezes.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        budget_ledger: BudgetLedger | None = None,
        lock_manager: LockManager | None = None,
    ):
        super().__init__(session)
        self._config = config or EngineConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._budget = budget_ledger or BudgetLedger(session, self._config, self._clock)
        self._locks = lock_manager or get_lock_manager(self._config.lock_timeout_seconds)
        self._assignments = AssignmentSelector(session)
        self.optimistic_retry_limit = self._config.optimistic_retry_limit

    # =========================================================================
    # Freeze / unfreeze
    # =========================================================================

    def freeze_order(
        self,
        ctx: RequestContext,
        order_id: UUID,
        reason: str | None = None,
        admin_override: bool = False,
    ) -> FreezeResult:
        """
        Freeze one order and append its replacement after the subscription end.

        The order must be PENDING or ACTIVE, its subscription ACTIVE, and
        its date in the future or today before the project cutoff.
        """
        with LogContext.bind(**ctx.log_fields()):
            return self._atomic(
                "freeze_order",
                lambda: self._freeze(ctx, order_id, reason, admin_override),
                conflict_entity=("order", order_id),
            )

    def unfreeze_order(
        self,
        ctx: RequestContext,
        order_id: UUID,
        admin_override: bool = False,
    ) -> UnfreezeResult:
        """Undo a freeze: drop the replacement and restore the order."""
        with LogContext.bind(**ctx.log_fields()):
            return self._atomic(
                "unfreeze_order",
                lambda: self._unfreeze(ctx, order_id, admin_override),
                conflict_entity=("order", order_id),
            )

    def freeze_period(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        reason: str | None = None,
        admin_override: bool = False,
    ) -> FreezePeriodResult:
        """
        Freeze every freezable order of the employee in [start_date, end_date].

        Past-dated orders in the range are skipped.  If the weekly limit is
        hit partway, nothing persists and the error names the offending
        date.
        """
        if start_date > end_date:
            raise ValidationError("start_date", f"{start_date} is after end date {end_date}")

        with LogContext.bind(**ctx.log_fields(), employee_id=employee_id):
            with self._locks.hold("employee", employee_id):
                result = self._atomic(
                    "freeze_period",
                    lambda: self._freeze_period(
                        ctx, employee_id, start_date, end_date, reason, admin_override
                    ),
                    conflict_entity=("employee", employee_id),
                )
            logger.info(
                "freeze_period_applied",
                extra={
                    "start_date": start_date,
                    "end_date": end_date,
                    "affected_count": result.affected_count,
                    "new_subscription_end_date": result.new_subscription_end_date,
                },
            )
            return result

    def _freeze(
        self,
        ctx: RequestContext,
        order_id: UUID,
        reason: str | None,
        admin_override: bool,
    ) -> FreezeResult:
        order, subscription = self._lock_order(ctx, order_id, "freeze")

        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateError(
                "subscription", subscription.id, subscription.status.value, "freeze order"
            )
        if order.status not in FREEZABLE_STATUSES:
            raise InvalidStateError("order", order.id, order.status.value, "freeze")

        project = self._load_project(ctx, order.project_id)
        if order.assignment_date < self._budget.project_today(project):
            raise InvalidStateError(
                "order", order.id, order.status.value, "freeze", "order date is in the past"
            )
        self._budget.check_cutoff(project, order.assignment_date, admin_override)
        self._enforce_freeze_limit(order.employee_id, order.assignment_date)

        replacement_date = self._next_free_date(
            order.employee_id, subscription.end_date + timedelta(days=1)
        )
        replacement = Assignment(
            company_id=order.company_id,
            project_id=order.project_id,
            subscription_id=subscription.id,
            employee_id=order.employee_id,
            assignment_date=replacement_date,
            combo_type=order.combo_type,
            price=order.price,
            status=AssignmentStatus.REPLACEMENT,
            replaces_id=order.id,
            created_by_id=ctx.actor_id,
        )
        self.session.add(replacement)
        self.session.flush()

        now = self._clock.now_utc()
        order.status_before_freeze = order.status
        order.status = AssignmentStatus.FROZEN
        order.frozen_at = now
        order.freeze_reason = reason
        order.replacement_id = replacement.id
        order.replacement_date = replacement_date
        order.updated_by_id = ctx.actor_id

        subscription.extend_by_one_day()
        subscription.updated_by_id = ctx.actor_id

        self._record_event(ctx, order, FreezeAction.FREEZE, replacement_date, reason, now)
        self.session.flush()

        logger.info(
            "order_frozen",
            extra={
                "order_id": order.id,
                "subscription_id": subscription.id,
                "employee_id": order.employee_id,
                "assignment_date": order.assignment_date,
                "replacement_date": replacement_date,
                "subscription_end_date": subscription.end_date,
            },
        )
        return FreezeResult(
            id=order.id,
            status=order.status.value,
            frozen_at=now,
            replacement_id=replacement.id,
            replacement_date=replacement_date,
            subscription_end_date=subscription.end_date,
        )

    def _unfreeze(self, ctx: RequestContext, order_id: UUID, admin_override: bool) -> UnfreezeResult:
        order, subscription = self._lock_order(ctx, order_id, "unfreeze")

        if order.status != AssignmentStatus.FROZEN:
            raise InvalidStateError("order", order.id, order.status.value, "unfreeze")
        if subscription.is_terminal:
            raise InvalidStateError(
                "subscription", subscription.id, subscription.status.value, "unfreeze order"
            )

        project = self._load_project(ctx, order.project_id)
        if order.assignment_date < self._budget.project_today(project):
            raise InvalidStateError(
                "order", order.id, order.status.value, "unfreeze", "order date is in the past"
            )
        self._budget.check_cutoff(project, order.assignment_date, admin_override)

        replacement = None
        if order.replacement_id is not None:
            replacement = self._load_order(ctx, order.replacement_id, for_update=True)
        if replacement is None or replacement.status not in LIVE_STATUSES:
            raise InvalidStateError(
                "order",
                order.replacement_id or order.id,
                replacement.status.value if replacement is not None else "missing",
                "unfreeze",
                "replacement order was already changed",
            )

        replacement_date = replacement.assignment_date
        # a combo change made on the replacement comes back with the order
        order.combo_type = replacement.combo_type
        order.price = replacement.price
        self.session.delete(replacement)
        self.session.flush()

        order.status = order.status_before_freeze or AssignmentStatus.ACTIVE
        order.status_before_freeze = None
        order.frozen_at = None
        order.freeze_reason = None
        order.replacement_id = None
        order.replacement_date = None
        order.updated_by_id = ctx.actor_id

        subscription.shrink_by_one_day()
        subscription.updated_by_id = ctx.actor_id
        self._pull_back_stray_replacement(subscription, replacement_date)

        self._record_event(
            ctx, order, FreezeAction.UNFREEZE, replacement_date, None, self._clock.now_utc()
        )
        self.session.flush()

        logger.info(
            "order_unfrozen",
            extra={
                "order_id": order.id,
                "subscription_id": subscription.id,
                "employee_id": order.employee_id,
                "assignment_date": order.assignment_date,
                "removed_replacement_date": replacement_date,
                "subscription_end_date": subscription.end_date,
            },
        )
        return UnfreezeResult(
            id=order.id,
            status=order.status.value,
            subscription_end_date=subscription.end_date,
        )

    def _freeze_period(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        reason: str | None,
        admin_override: bool,
    ) -> FreezePeriodResult:
        employee = self._load_employee(ctx, employee_id)
        project = self._load_project(ctx, employee.project_id)
        lower = max(start_date, self._budget.project_today(project))

        order_ids = list(
            self.session.execute(
                select(Assignment.id)
                .join(Subscription, Subscription.id == Assignment.subscription_id)
                .where(
                    Assignment.employee_id == employee.id,
                    Assignment.status.in_(list(FREEZABLE_STATUSES)),
                    Assignment.assignment_date.between(lower, end_date),
                    Subscription.status == SubscriptionStatus.ACTIVE,
                )
                .order_by(Assignment.assignment_date)
            ).scalars()
        )
        if not order_ids:
            raise InvalidStateError(
                "employee",
                employee.id,
                "no_freezable_orders",
                "freeze period",
                f"no freezable orders between {start_date} and {end_date}",
            )

        results = [self._freeze(ctx, order_id, reason, admin_override) for order_id in order_ids]
        return FreezePeriodResult(
            affected_order_ids=tuple(r.id for r in results),
            new_subscription_end_date=max(r.subscription_end_date for r in results),
        )

    # =========================================================================
    # Weekly limit
    # =========================================================================

    def validate_freeze_limit(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        day: date,
        max_freezes_per_week: int | None = None,
    ) -> bool:
        """True iff the employee may freeze one more order in the ISO week of ``day``."""
        employee = self._load_employee(ctx, employee_id)
        limit = self._limit(max_freezes_per_week)
        week_start, week_end = iso_week_bounds(day)
        return self._assignments.count_frozen_in_range(employee.id, week_start, week_end) < limit

    def get_employee_freeze_info(self, ctx: RequestContext, employee_id: UUID) -> FreezeInfo:
        employee = self._load_employee(ctx, employee_id)
        project = self._load_project(ctx, employee.project_id)
        week_start, week_end = iso_week_bounds(self._budget.project_today(project))
        return FreezeInfo(
            employee_id=employee.id,
            week_start=week_start,
            used_this_week=self._assignments.count_frozen_in_range(employee.id, week_start, week_end),
            week_limit=self._config.max_freezes_per_week,
        )

    def get_freeze_record(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        day: date,
        source: str = "assignments",
    ) -> FreezeRecord:
        """Weekly freeze usage, from assignment status or from freeze history."""
        if source not in FREEZE_RECORD_SOURCES:
            raise ValidationError("source", f"expected one of {FREEZE_RECORD_SOURCES}, got {source!r}")
        employee = self._load_employee(ctx, employee_id)
        week_start, week_end = iso_week_bounds(day)
        if source == "assignments":
            used = self._assignments.count_frozen_in_range(employee.id, week_start, week_end)
        else:
            used = self._assignments.count_frozen_from_history(employee.id, week_start, week_end)
        return FreezeRecord(
            employee_id=employee.id,
            week=iso_week_label(day),
            week_start=week_start,
            week_end=week_end,
            used=used,
            limit=self._config.max_freezes_per_week,
            source=source,
        )

    def list_freeze_history(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> list[FreezeHistoryEntry]:
        employee = self._load_employee(ctx, employee_id)
        return [
            FreezeHistoryEntry.from_model(row)
            for row in self._assignments.freeze_history(employee.id, start, end)
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _limit(self, override: int | None) -> int:
        return self._config.max_freezes_per_week if override is None else override

    def _enforce_freeze_limit(self, employee_id: UUID, day: date) -> None:
        limit = self._config.max_freezes_per_week
        week_start, week_end = iso_week_bounds(day)
        used = self._assignments.count_frozen_in_range(employee_id, week_start, week_end)
        if used >= limit:
            logger.info(
                "freeze_limit_reached",
                extra={"employee_id": employee_id, "offending_date": day, "used": used, "limit": limit},
            )
            raise FreezeLimitExceededError(employee_id, day, week_start, used, limit)

    def _lock_order(
        self,
        ctx: RequestContext,
        order_id: UUID,
        operation: str,
    ) -> tuple[Assignment, Subscription]:
        """Lock the order's subscription row, then the order row."""
        order = self._load_order(ctx, order_id)
        if order.is_guest_order:
            raise InvalidStateError(
                "order", order.id, order.status.value, operation, "guest orders have no subscription"
            )
        subscription = self._load_subscription(ctx, order.subscription_id)
        order = self._load_order(ctx, order_id, for_update=True)
        return order, subscription

    def _pull_back_stray_replacement(self, subscription: Subscription, freed_date: date) -> None:
        """
        Move the latest replacement left past the shortened end date into
        the slot the removed replacement freed.
        """
        if freed_date > subscription.end_date:
            return
        stray = self.session.execute(
            select(Assignment)
            .where(
                Assignment.subscription_id == subscription.id,
                Assignment.replaces_id.is_not(None),
                Assignment.status != AssignmentStatus.CANCELLED,
                Assignment.assignment_date > subscription.end_date,
            )
            .order_by(Assignment.assignment_date.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if stray is None:
            return
        if freed_date in self._assignments.occupied_dates_from(stray.employee_id, freed_date):
            return

        original = self.session.get(Assignment, stray.replaces_id)
        logger.info(
            "replacement_moved",
            extra={
                "order_id": stray.id,
                "subscription_id": subscription.id,
                "from_date": stray.assignment_date,
                "to_date": freed_date,
            },
        )
        stray.assignment_date = freed_date
        if original is not None:
            original.replacement_date = freed_date
        self.session.flush()

    def _next_free_date(self, employee_id: UUID, start: date) -> date:
        taken = self._assignments.occupied_dates_from(employee_id, start)
        day = start
        while day in taken:
            day += timedelta(days=1)
        return day

    def _record_event(
        self,
        ctx: RequestContext,
        order: Assignment,
        action: FreezeAction,
        replacement_date: date | None,
        reason: str | None,
        occurred_at: datetime,
    ) -> None:
        self.session.add(
            FreezeEvent(
                company_id=order.company_id,
                employee_id=order.employee_id,
                subscription_id=order.subscription_id,
                assignment_id=order.id,
                action=action,
                assignment_date=order.assignment_date,
                replacement_date=replacement_date,
                reason=reason,
                occurred_at=occurred_at,
                created_by_id=ctx.actor_id,
            )
        )
