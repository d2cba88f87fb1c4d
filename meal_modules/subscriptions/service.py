"""
Subscription Orchestrator Service (``meal_modules.subscriptions.service``).

Responsibility
--------------
Entry point for subscription lifecycle operations: creation from a
recurrence pattern, bulk pause/resume/cancel/combo changes, combo
updates, guest orders, payments and read views.  Freeze and
compensation requests are delegated to their engines.

Architecture position
---------------------
**Modules layer** -- composes the Calendar Generator, Budget Ledger,
Freeze Engine and Compensation Ledger through the narrow protocols in
``meal_modules.capabilities``.  Creation flows one way (calendar ->
persisted orders); freeze flows through the Freeze Engine.

Invariants enforced
-------------------
* A subscription and all of its initial orders are created in one
  savepoint together with the budget reservation of their total.
* An employee is only enrolled for their own project, and never twice on
  the same date (partial unique index backs this up).
* Bulk actions are all or nothing.  Explicit order ids are strict: one
  ineligible order fails the call.
* Every price change reserves or releases its delta; every cancel
  releases the cancelled orders' value.
* A replacement is never paused or cancelled on its own.  Cancelling a
  whole subscription cancels each frozen order with its replacement, and
  resuming restores the replacement status.
* Rows are locked subscription first (sorted by id), then orders.

Failure modes
-------------
* ``ValidationError`` -- short span, unknown combo or pattern, empty
  selection, address change, non-positive amounts.
* ``InvalidStateError`` -- inactive project/employee, ineligible order or
  subscription status, date already taken.
* ``BudgetExceededError`` / ``CutoffPassedError`` -- from the Budget Ledger.
* ``OptimisticLockError`` / ``LockTimeoutError`` / ``StorageTimeoutError``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_config.schema import EngineConfig
from meal_engines import calendar as calendar_engine
from meal_kernel.db.types import ZERO, round_money, to_money
from meal_kernel.domain.clock import Clock, SystemClock
from meal_kernel.domain.context import RequestContext
from meal_kernel.domain.dtos import CalendarDay, OrderView
from meal_kernel.exceptions import InvalidStateError, ValidationError
from meal_kernel.logging_config import LogContext, get_logger
from meal_kernel.models import (
    LIVE_STATUSES,
    Assignment,
    AssignmentStatus,
    Employee,
    Project,
    ServiceType,
    Subscription,
    SubscriptionStatus,
)
from meal_kernel.selectors.assignment_selector import AssignmentSelector
from meal_kernel.services.base import BaseService
from meal_kernel.services.lock_service import LockManager, get_lock_manager
from meal_modules.budget.service import BudgetLedger
from meal_modules.capabilities import (
    BudgetLedgerCapability,
    CalendarCapability,
    CompensationLedgerCapability,
    FreezeCapability,
)
from meal_modules.compensation.service import CompensationLedger
from meal_modules.freeze.service import FreezeEngine
from meal_modules.subscriptions.models import (
    BulkAction,
    BulkActionResult,
    CreateSubscriptionRequest,
    EmployeeScheduleSpec,
    SubscriptionResult,
)

logger = get_logger("modules.subscriptions.service")

# Orders whose combo, price or status a caller may still change
MODIFIABLE_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
    AssignmentStatus.PAUSED,
    AssignmentStatus.REPLACEMENT,
})

# action -> (eligible order statuses, target status)
_ACTION_RULES: dict[BulkAction, tuple[frozenset[AssignmentStatus], AssignmentStatus | None]] = {
    BulkAction.PAUSE: (LIVE_STATUSES, AssignmentStatus.PAUSED),
    BulkAction.RESUME: (frozenset({AssignmentStatus.PAUSED}), AssignmentStatus.ACTIVE),
    BulkAction.CANCEL: (MODIFIABLE_STATUSES, AssignmentStatus.CANCELLED),
    BulkAction.CHANGE_COMBO: (MODIFIABLE_STATUSES, None),
}


class SubscriptionOrchestrator(BaseService):
    """
    Composes calendar, budget, freeze and compensation capabilities.

    Contract
    --------
    * Every mutating call flushes within the caller's transaction and is
      atomic through a savepoint.
    * Collaborators are injectable; defaults share this session, config,
      clock and lock manager.

    Guarantees
    ----------
    * Spend moves only through the Budget Ledger.
    * Subscription rows are written under ``SELECT ... FOR UPDATE`` and a
      version check.

    Non-goals
    ---------
    * No invoicing or payment capture; ``record_payment`` only records.
    * No delivery logistics.
    """

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        budget_ledger: BudgetLedgerCapability | None = None,
        freeze_engine: FreezeCapability | None = None,
        compensation_ledger: CompensationLedgerCapability | None = None,
        calendar: CalendarCapability | None = None,
        lock_manager: LockManager | None = None,
    ):
        super().__init__(session)
        self._config = config or EngineConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._locks = lock_manager or get_lock_manager(self._config.lock_timeout_seconds)
        self._calendar: CalendarCapability = calendar or calendar_engine
        self._budget: BudgetLedgerCapability = budget_ledger or BudgetLedger(
            session, self._config, self._clock
        )
        self._freeze: FreezeCapability = freeze_engine or FreezeEngine(
            session,
            self._config,
            self._clock,
            budget_ledger=self._budget,
            lock_manager=self._locks,
        )
        self._compensation: CompensationLedgerCapability = compensation_ledger or CompensationLedger(
            session,
            budget_ledger=self._budget,
            config=self._config,
            clock=self._clock,
            lock_manager=self._locks,
        )
        self._assignments = AssignmentSelector(session)
        self.optimistic_retry_limit = self._config.optimistic_retry_limit

    # =========================================================================
    # Creation
    # =========================================================================

    def create_subscription(
        self,
        ctx: RequestContext,
        request: CreateSubscriptionRequest,
        admin_override: bool = False,
    ) -> SubscriptionResult:
        """
        Create a subscription and one ACTIVE order per generated date.

        The total of all orders is reserved against the project budget in
        the same savepoint; any failure persists nothing.
        """
        minimum = self._config.min_subscription_days
        if request.span_days < minimum:
            raise ValidationError(
                "end_date",
                f"subscription must span at least {minimum} days, got {request.span_days}",
            )
        schedules = [
            (spec, *self._expand(request, spec)) for spec in request.employees
        ]

        with LogContext.bind(**ctx.log_fields()):
            result = self._atomic(
                "create_subscription",
                lambda: self._create(ctx, request, schedules, admin_override),
            )
            logger.info(
                "subscription_created",
                extra={
                    "subscription_id": result.id,
                    "start_date": result.start_date,
                    "end_date": result.end_date,
                    "employee_count": len(request.employees),
                    "order_count": len(result.assignments),
                    "total_amount": result.total_amount,
                },
            )
            return result

    def _expand(
        self,
        request: CreateSubscriptionRequest,
        spec: EmployeeScheduleSpec,
    ) -> tuple[tuple[date, ...], Decimal]:
        dates = self._calendar.generate_dates(
            request.start_date,
            request.end_date,
            spec.pattern,
            spec.custom_dates or None,
        )
        price = self._calendar.resolve_combo_price(spec.combo_type, self._config.combo_prices)
        return dates, price

    def _create(
        self,
        ctx: RequestContext,
        request: CreateSubscriptionRequest,
        schedules: list[tuple[EmployeeScheduleSpec, tuple[date, ...], Decimal]],
        admin_override: bool,
    ) -> SubscriptionResult:
        project = self._load_lunch_project(ctx, request.project_id, "create subscription")
        today = self._budget.project_today(project)
        if request.start_date < today:
            raise ValidationError(
                "start_date", f"{request.start_date} is before project-local today {today}"
            )
        if any(today in dates for _, dates, _ in schedules):
            self._budget.check_cutoff(project, today, admin_override)

        for spec, dates, _ in schedules:
            employee = self._load_member(ctx, spec.employee_id, project, "enroll")
            taken = self._assignments.occupied_dates(employee.id, dates)
            if taken:
                raise InvalidStateError(
                    "employee",
                    employee.id,
                    "already_assigned",
                    "enroll",
                    f"already has orders on {', '.join(str(d) for d in sorted(taken))}",
                )

        total = round_money(sum((price * len(dates) for _, dates, price in schedules), ZERO))
        self._budget.reserve(ctx, project.id, total)

        subscription = Subscription(
            company_id=project.company_id,
            project_id=project.id,
            start_date=request.start_date,
            original_end_date=request.end_date,
            end_date=request.end_date,
            total_amount=total,
            paid_amount=ZERO,
            is_paid=False,
            status=SubscriptionStatus.ACTIVE,
            paused_days_count=0,
            created_by_id=ctx.actor_id,
        )
        self.session.add(subscription)
        self.session.flush()

        rows = [
            Assignment(
                company_id=project.company_id,
                project_id=project.id,
                subscription_id=subscription.id,
                employee_id=spec.employee_id,
                assignment_date=day,
                combo_type=spec.combo_type,
                price=price,
                status=AssignmentStatus.ACTIVE,
                created_by_id=ctx.actor_id,
            )
            for spec, dates, price in schedules
            for day in dates
        ]
        self.session.add_all(rows)
        self.session.flush()

        rows.sort(key=lambda r: (r.assignment_date, str(r.employee_id)))
        return SubscriptionResult.from_model(subscription, [OrderView.from_model(r) for r in rows])

    # =========================================================================
    # Bulk actions
    # =========================================================================

    def bulk_action(
        self,
        ctx: RequestContext,
        action: BulkAction | str,
        order_ids=(),
        subscription_ids=(),
        combo_type: str | None = None,
        admin_override: bool = False,
    ) -> BulkActionResult:
        """
        Apply pause, resume, cancel or change_combo to many orders at once.

        ``order_ids`` are applied strictly.  ``subscription_ids`` select
        every eligible order dated today (while the cutoff allows) or later
        and also move the subscription itself.
        """
        action = BulkAction.parse(action)
        if action is BulkAction.CHANGE_ADDRESS:
            raise ValidationError(
                "action", "delivery address belongs to the project and cannot be changed"
            )
        order_ids = tuple(dict.fromkeys(order_ids))
        subscription_ids = tuple(sorted(set(subscription_ids)))
        if not order_ids and not subscription_ids:
            raise ValidationError("order_ids", "no orders or subscriptions selected")

        new_price = None
        if action is BulkAction.CHANGE_COMBO:
            if not combo_type:
                raise ValidationError("combo_type", "required for change_combo")
            new_price = self._calendar.resolve_combo_price(combo_type, self._config.combo_prices)

        with LogContext.bind(**ctx.log_fields()):
            with self._locks.hold_many("subscription", subscription_ids):
                result = self._atomic(
                    "bulk_action",
                    lambda: self._bulk(
                        ctx, action, order_ids, subscription_ids, combo_type, new_price, admin_override
                    ),
                )
            logger.info(
                "bulk_action_applied",
                extra={
                    "action": action.value,
                    "order_count": len(order_ids),
                    "subscription_count": len(subscription_ids),
                    "updated_count": result.updated_count,
                    "budget_delta": result.budget_delta,
                },
            )
            return result

    def _bulk(
        self,
        ctx: RequestContext,
        action: BulkAction,
        order_ids: tuple[UUID, ...],
        subscription_ids: tuple[UUID, ...],
        combo_type: str | None,
        new_price: Decimal | None,
        admin_override: bool,
    ) -> BulkActionResult:
        eligible, target = _ACTION_RULES[action]
        projects: dict[UUID, Project] = {}

        explicit = [self._load_order(ctx, order_id) for order_id in order_ids]
        to_lock = set(subscription_ids) | {o.subscription_id for o in explicit if o.subscription_id}
        subscriptions = {sid: self._load_subscription(ctx, sid) for sid in sorted(to_lock)}

        touched: dict[UUID, Assignment] = {}
        for order_id in order_ids:
            order = self._load_order(ctx, order_id, for_update=True)
            project = self._project(ctx, order.project_id, projects)
            self._check_eligible(order, action, eligible, project, admin_override)
            touched[order.id] = order

        now = self._clock.now_utc()
        for subscription_id in subscription_ids:
            subscription = subscriptions[subscription_id]
            self._move_subscription(ctx, subscription, action, now)
            project = self._project(ctx, subscription.project_id, projects)
            for order in self._selectable_orders(subscription, eligible, project, admin_override):
                touched.setdefault(order.id, order)

        deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for order in touched.values():
            if action is BulkAction.CHANGE_COMBO:
                deltas[order.project_id] += new_price - order.price
                order.combo_type = combo_type
                order.price = new_price
            else:
                if action is BulkAction.CANCEL:
                    deltas[order.project_id] -= order.price
                if target is AssignmentStatus.ACTIVE and order.replaces_id is not None:
                    order.status = AssignmentStatus.REPLACEMENT
                else:
                    order.status = target
            order.updated_by_id = ctx.actor_id
        if action is BulkAction.CANCEL:
            self._cancel_frozen_originals(ctx, touched.values())
        self.session.flush()

        for project_id in sorted(deltas):
            if deltas[project_id] != ZERO:
                self._budget.adjust(ctx, project_id, deltas[project_id])

        if action is BulkAction.CHANGE_COMBO:
            for subscription_id in sorted({o.subscription_id for o in touched.values() if o.subscription_id}):
                self._refresh_total(ctx, subscriptions[subscription_id])

        return BulkActionResult(
            action=action.value,
            updated_count=len(touched),
            budget_delta=round_money(sum(deltas.values(), ZERO)),
        )

    def _check_eligible(
        self,
        order: Assignment,
        action: BulkAction,
        eligible: frozenset[AssignmentStatus],
        project: Project,
        admin_override: bool,
    ) -> None:
        if order.status not in eligible:
            raise InvalidStateError("order", order.id, order.status.value, action.value)
        if order.status is AssignmentStatus.REPLACEMENT and action in (
            BulkAction.PAUSE,
            BulkAction.CANCEL,
        ):
            raise InvalidStateError(
                "order",
                order.id,
                order.status.value,
                action.value,
                "order stands in for a frozen order; unfreeze that order instead",
            )
        if order.assignment_date < self._budget.project_today(project):
            raise InvalidStateError(
                "order", order.id, order.status.value, action.value, "order date is in the past"
            )
        self._budget.check_cutoff(project, order.assignment_date, admin_override)

    def _cancel_frozen_originals(self, ctx: RequestContext, cancelled) -> None:
        """A cancelled replacement takes its frozen order down with it."""
        replacement_ids = [o.id for o in cancelled if o.replaces_id is not None]
        if not replacement_ids:
            return
        originals = self.session.execute(
            select(Assignment)
            .where(
                Assignment.replacement_id.in_(replacement_ids),
                Assignment.status == AssignmentStatus.FROZEN,
            )
            .order_by(Assignment.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        for original in originals:
            original.status = AssignmentStatus.CANCELLED
            original.updated_by_id = ctx.actor_id

    def _move_subscription(
        self,
        ctx: RequestContext,
        subscription: Subscription,
        action: BulkAction,
        now: datetime,
    ) -> None:
        if subscription.is_terminal:
            raise InvalidStateError(
                "subscription", subscription.id, subscription.status.value, action.value
            )
        if action is BulkAction.PAUSE:
            if subscription.status != SubscriptionStatus.ACTIVE:
                raise InvalidStateError(
                    "subscription", subscription.id, subscription.status.value, action.value
                )
            subscription.status = SubscriptionStatus.PAUSED
            subscription.paused_at = now
        elif action is BulkAction.RESUME:
            if subscription.status != SubscriptionStatus.PAUSED:
                raise InvalidStateError(
                    "subscription", subscription.id, subscription.status.value, action.value
                )
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.paused_at = None
        elif action is BulkAction.CANCEL:
            subscription.status = SubscriptionStatus.CANCELLED
        else:
            return
        subscription.updated_by_id = ctx.actor_id

    def _selectable_orders(
        self,
        subscription: Subscription,
        eligible: frozenset[AssignmentStatus],
        project: Project,
        admin_override: bool,
        employee_id: UUID | None = None,
    ) -> list[Assignment]:
        """Eligible orders of a subscription that can still change, oldest first."""
        today = self._budget.project_today(project)
        stmt = select(Assignment).where(
            Assignment.subscription_id == subscription.id,
            Assignment.status.in_(list(eligible)),
        )
        if admin_override or not self._budget.is_cutoff_passed(project):
            stmt = stmt.where(Assignment.assignment_date >= today)
        else:
            stmt = stmt.where(Assignment.assignment_date > today)
        if employee_id is not None:
            stmt = stmt.where(Assignment.employee_id == employee_id)
        stmt = (
            stmt.order_by(Assignment.assignment_date, Assignment.employee_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars())

    # =========================================================================
    # Updates
    # =========================================================================

    def update_subscription(
        self,
        ctx: RequestContext,
        subscription_id: UUID,
        combo_type: str,
        employee_id: UUID | None = None,
        admin_override: bool = False,
    ) -> SubscriptionResult:
        """
        Switch the combo of every order that can still change.

        Past, delivered, frozen and cancelled orders keep their price.  The
        total amount is recomputed and the price delta reserved or released.
        """
        new_price = self._calendar.resolve_combo_price(combo_type, self._config.combo_prices)

        def run() -> SubscriptionResult:
            subscription = self._load_subscription(ctx, subscription_id)
            if subscription.is_terminal:
                raise InvalidStateError(
                    "subscription", subscription.id, subscription.status.value, "update"
                )
            project = self._load_project(ctx, subscription.project_id)
            orders = self._selectable_orders(
                subscription, MODIFIABLE_STATUSES, project, admin_override, employee_id
            )
            delta = ZERO
            for order in orders:
                delta += new_price - order.price
                order.combo_type = combo_type
                order.price = new_price
                order.updated_by_id = ctx.actor_id
            self.session.flush()
            if delta != ZERO:
                self._budget.adjust(ctx, project.id, delta)
            self._refresh_total(ctx, subscription)
            self.session.flush()

            logger.info(
                "subscription_updated",
                extra={
                    "subscription_id": subscription.id,
                    "combo_type": combo_type,
                    "repriced_count": len(orders),
                    "budget_delta": delta,
                },
            )
            return SubscriptionResult.from_model(
                subscription, self._assignments.orders_for_subscription(subscription.id)
            )

        with LogContext.bind(**ctx.log_fields(), subscription_id=subscription_id):
            with self._locks.hold("subscription", subscription_id):
                return self._atomic(
                    "update_subscription", run, conflict_entity=("subscription", subscription_id)
                )

    def record_payment(self, ctx: RequestContext, subscription_id: UUID, amount: Decimal) -> SubscriptionResult:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount", f"must be positive, got {amount}")

        def run() -> SubscriptionResult:
            subscription = self._load_subscription(ctx, subscription_id)
            if subscription.status == SubscriptionStatus.CANCELLED:
                raise InvalidStateError(
                    "subscription", subscription.id, subscription.status.value, "record payment"
                )
            subscription.paid_amount = round_money(to_money(subscription.paid_amount) + amount)
            subscription.is_paid = subscription.paid_amount >= to_money(subscription.total_amount)
            subscription.updated_by_id = ctx.actor_id
            self.session.flush()
            logger.info(
                "subscription_payment_recorded",
                extra={
                    "subscription_id": subscription.id,
                    "amount": amount,
                    "paid_amount": subscription.paid_amount,
                    "is_paid": subscription.is_paid,
                },
            )
            return SubscriptionResult.from_model(subscription)

        with LogContext.bind(**ctx.log_fields(), subscription_id=subscription_id):
            with self._locks.hold("subscription", subscription_id):
                return self._atomic(
                    "record_payment", run, conflict_entity=("subscription", subscription_id)
                )

    def create_guest_order(
        self,
        ctx: RequestContext,
        project_id: UUID,
        day: date,
        combo_type: str,
        quantity: int = 1,
        guest_name: str | None = None,
        admin_override: bool = False,
    ) -> list[OrderView]:
        """One-off orders for visitors: no subscription, no employee."""
        if quantity < 1:
            raise ValidationError("quantity", f"must be at least 1, got {quantity}")
        price = self._calendar.resolve_combo_price(combo_type, self._config.combo_prices)

        def run() -> list[OrderView]:
            project = self._load_lunch_project(ctx, project_id, "create guest order")
            today = self._budget.project_today(project)
            if day < today:
                raise ValidationError("day", f"{day} is before project-local today {today}")
            self._budget.check_cutoff(project, day, admin_override)
            self._budget.reserve(ctx, project.id, price * quantity)

            rows = [
                Assignment(
                    company_id=project.company_id,
                    project_id=project.id,
                    guest_name=guest_name or "Guest",
                    assignment_date=day,
                    combo_type=combo_type,
                    price=price,
                    status=AssignmentStatus.ACTIVE,
                    created_by_id=ctx.actor_id,
                )
                for _ in range(quantity)
            ]
            self.session.add_all(rows)
            self.session.flush()
            logger.info(
                "guest_order_created",
                extra={"day": day, "quantity": quantity, "combo_type": combo_type},
            )
            return [OrderView.from_model(r) for r in rows]

        with LogContext.bind(**ctx.log_fields()):
            return self._atomic("create_guest_order", run)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_subscription(self, ctx: RequestContext, subscription_id: UUID) -> SubscriptionResult:
        subscription = self._load_subscription(ctx, subscription_id, for_update=False)
        return SubscriptionResult.from_model(
            subscription, self._assignments.orders_for_subscription(subscription.id)
        )

    def list_employee_orders(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> list[OrderView]:
        if start is not None and end is not None and start > end:
            raise ValidationError("start", f"{start} is after {end}")
        employee = self._load_employee(ctx, employee_id)
        return self._assignments.orders_for_employee(employee.id, start, end)

    def get_calendar(self, ctx: RequestContext, project_id: UUID, start: date, end: date) -> list[CalendarDay]:
        if start > end:
            raise ValidationError("start", f"{start} is after {end}")
        project = self._load_project(ctx, project_id)
        return self._assignments.calendar(project.id, start, end)

    # =========================================================================
    # Delegation
    # =========================================================================

    def freeze_order(self, ctx: RequestContext, order_id: UUID, reason: str | None = None, admin_override: bool = False):
        return self._freeze.freeze_order(ctx, order_id, reason=reason, admin_override=admin_override)

    def unfreeze_order(self, ctx: RequestContext, order_id: UUID, admin_override: bool = False):
        return self._freeze.unfreeze_order(ctx, order_id, admin_override=admin_override)

    def freeze_period(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        reason: str | None = None,
        admin_override: bool = False,
    ):
        return self._freeze.freeze_period(
            ctx, employee_id, start_date, end_date, reason=reason, admin_override=admin_override
        )

    def get_employee_freeze_info(self, ctx: RequestContext, employee_id: UUID):
        return self._freeze.get_employee_freeze_info(ctx, employee_id)

    def process_compensation(
        self,
        ctx: RequestContext,
        employee_id: UUID,
        project_id: UUID,
        amount: Decimal,
        restaurant_name: str | None = None,
        description: str | None = None,
    ):
        return self._compensation.process_transaction(
            ctx, employee_id, project_id, amount, restaurant_name, description
        )

    def get_compensation_summary(self, ctx: RequestContext, project_id: UUID, day: date):
        return self._compensation.get_daily_summary(ctx, project_id, day)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_lunch_project(self, ctx: RequestContext, project_id: UUID, operation: str) -> Project:
        project = self._load_project(ctx, project_id)
        if not project.is_active:
            raise InvalidStateError("project", project.id, project.status.value, operation)
        if not project.offers(ServiceType.LUNCH):
            raise InvalidStateError(
                "project", project.id, project.service_types_raw, operation,
                "project does not offer lunch",
            )
        return project

    def _load_member(self, ctx: RequestContext, employee_id: UUID, project: Project, operation: str) -> Employee:
        employee = self._load_employee(ctx, employee_id)
        if employee.project_id != project.id:
            raise ValidationError(
                "employee_id",
                f"employee {employee.id} belongs to another project and cannot be "
                f"delivered to {project.address_name}",
            )
        if not employee.is_active:
            raise InvalidStateError("employee", employee.id, "inactive", operation)
        return employee

    def _project(self, ctx: RequestContext, project_id: UUID, cache: dict[UUID, Project]) -> Project:
        if project_id not in cache:
            cache[project_id] = self._load_project(ctx, project_id)
        return cache[project_id]

    def _refresh_total(self, ctx: RequestContext, subscription: Subscription) -> None:
        self.session.flush()
        subscription.total_amount = self._assignments.subscription_amount(subscription.id)
        subscription.is_paid = to_money(subscription.paid_amount) >= subscription.total_amount
        subscription.updated_by_id = ctx.actor_id
