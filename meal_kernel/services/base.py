"""
BaseService -- abstract base for all engine services.

Responsibility:
    Common constructor and session contract for every service, plus the
    shared mechanics every mutating operation needs: tenant-scoped entity
    loading (optionally with a row lock), an all-or-nothing savepoint with
    a single optimistic-concurrency retry, and translation of storage
    waits into typed timeouts.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Module services
    (budget, compensation, freeze, subscriptions) extend this class.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit.  The caller (session_scope() or a
      test harness) owns commit/rollback.
    - Tenant isolation: every load filters by ``ctx.company_id`` (and by
      ``ctx.project_id`` when set); a foreign entity is NotFound.
    - Atomicity: ``_atomic`` runs the operation in a savepoint; any error
      rolls the savepoint back so no partial mutation survives.
    - At most one retry on a stale version token, then OptimisticLockError.

Failure modes:
    - EntityNotFoundError subclasses for unknown or foreign ids.
    - OptimisticLockError after the retry also loses.
    - StorageTimeoutError on pool exhaustion or lock-wait expiry.
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from meal_kernel.domain.context import RequestContext
from meal_kernel.exceptions import (
    EmployeeNotFoundError,
    OptimisticLockError,
    OrderNotFoundError,
    ProjectNotFoundError,
    StorageTimeoutError,
    SubscriptionNotFoundError,
)
from meal_kernel.logging_config import get_logger
from meal_kernel.models import Assignment, Employee, Project, Subscription

logger = get_logger("services.base")

T = TypeVar("T")

_LOCK_WAIT_MARKERS = (
    "database is locked",
    "lock timeout",
    "canceling statement due to lock timeout",
    "could not obtain lock",
)


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    """Map bounded-wait failures from the driver/pool to StorageTimeoutError."""
    try:
        yield
    except PoolTimeoutError as exc:
        logger.warning("storage_pool_timeout", extra={"operation": operation})
        raise StorageTimeoutError(operation, str(exc)) from exc
    except OperationalError as exc:
        message = str(exc.orig if exc.orig is not None else exc).lower()
        if any(marker in message for marker in _LOCK_WAIT_MARKERS):
            logger.warning("storage_lock_timeout", extra={"operation": operation})
            raise StorageTimeoutError(operation, message) from exc
        raise


class BaseService(ABC):
    """
    Abstract base class for all engine services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists via
        ``session.flush()`` within the caller's transaction.

    Guarantees:
        - Never calls ``session.commit()``.
        - ``_atomic`` either applies every change of an operation or none.

    Non-goals:
        - Read-only aggregations belong in ``meal_kernel/selectors/``.
    """

    optimistic_retry_limit: int = 1

    def __init__(self, session: Session):
        self.session = session

    # -----------------------------------------------------------------
    # Atomic execution
    # -----------------------------------------------------------------

    def _atomic(
        self,
        operation: str,
        fn: Callable[[], T],
        conflict_entity: tuple[str, UUID] | None = None,
    ) -> T:
        """
        Run ``fn`` inside a savepoint.

        A StaleDataError (stale subscription version) rolls the savepoint
        back, expires cached state and runs ``fn`` again, at most
        ``optimistic_retry_limit`` times.  Any other exception rolls the
        savepoint back and propagates unchanged.
        """
        attempt = 0
        while True:
            attempt += 1
            with translate_storage_errors(operation):
                savepoint = self.session.begin_nested()
                try:
                    result = fn()
                    self.session.flush()
                except StaleDataError:
                    savepoint.rollback()
                    self.session.expire_all()
                    if attempt > self.optimistic_retry_limit:
                        entity_type, entity_id = conflict_entity or ("entity", "unknown")
                        logger.warning(
                            "optimistic_lock_conflict",
                            extra={
                                "operation": operation,
                                "entity_type": entity_type,
                                "entity_id": entity_id,
                                "attempts": attempt,
                            },
                        )
                        raise OptimisticLockError(entity_type, entity_id) from None
                    logger.info(
                        "optimistic_lock_retry",
                        extra={"operation": operation, "attempt": attempt},
                    )
                    continue
                except Exception:
                    savepoint.rollback()
                    raise
                savepoint.commit()
                return result

    # -----------------------------------------------------------------
    # Tenant-scoped loading
    # -----------------------------------------------------------------

    def _scoped_one(self, model, ctx: RequestContext, entity_id: UUID, for_update: bool):
        stmt = select(model).where(model.id == entity_id, model.company_id == ctx.company_id)
        if ctx.project_id is not None:
            project_column = model.id if model is Project else model.project_id
            stmt = stmt.where(project_column == ctx.project_id)
        if for_update:
            stmt = stmt.with_for_update()
        with translate_storage_errors(f"load_{model.__tablename__}"):
            return self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalar_one_or_none()

    def _load_project(self, ctx: RequestContext, project_id: UUID, for_update: bool = False) -> Project:
        project = self._scoped_one(Project, ctx, project_id, for_update)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def _load_employee(self, ctx: RequestContext, employee_id: UUID, for_update: bool = False) -> Employee:
        employee = self._scoped_one(Employee, ctx, employee_id, for_update)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    def _load_subscription(
        self, ctx: RequestContext, subscription_id: UUID, for_update: bool = True
    ) -> Subscription:
        subscription = self._scoped_one(Subscription, ctx, subscription_id, for_update)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    def _load_order(self, ctx: RequestContext, order_id: UUID, for_update: bool = False) -> Assignment:
        order = self._scoped_one(Assignment, ctx, order_id, for_update)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order
