"""
Typed Exception Hierarchy for the Meal Benefits Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (admin APIs, schedulers, settlement jobs) must react to engine
failures by KIND, not by message text.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (entity id, offending date, limit value)

Example - WRONG way to handle errors:
    try:
        engine.freeze_order(ctx, order_id)
    except Exception as e:
        if "limit" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        engine.freeze_order(ctx, order_id)
    except FreezeLimitExceededError as e:
        api_response(code=e.code, date=e.offending_date, limit=e.limit)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from MealEngineError:

    MealEngineError (base)
    |
    +-- EntityNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- SubscriptionNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- InvalidStateError
    |
    +-- ValidationError
    |
    +-- FreezeLimitExceededError
    |
    +-- BudgetExceededError
    |
    +-- CutoffPassedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- EngineTimeoutError
        +-- LockTimeoutError
        +-- StorageTimeoutError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind            | Code                   | When Raised
----------------|------------------------|------------------------------------------
NotFound        | NOT_FOUND              | Unknown id, or entity of another company
InvalidState    | INVALID_STATE          | Operation illegal for current state
Validation      | VALIDATION_ERROR       | Malformed input (empty custom dates, ...)
Freeze          | FREEZE_LIMIT_EXCEEDED  | Weekly freeze maximum already used
Budget          | BUDGET_EXCEEDED        | spent + amount > budget + overdraft
Cutoff          | CUTOFF_PASSED          | Same-day change at/after project cutoff
Concurrency     | CONFLICT               | Version token stale after one retry
Timeout         | LOCK_TIMEOUT           | Keyed lock not acquired in time
                | STORAGE_TIMEOUT        | Pool checkout / database lock wait expired

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Cross-tenant access is indistinguishable from a missing entity:
   both raise the NotFound subclass for the entity type.

2. ConcurrencyError and EngineTimeoutError are the only kinds a caller
   may reasonably retry; everything else is deterministic for the same
   input and state.

3. BudgetExceededError is a signal, not a state change.  Moving a
   project to BLOCKED_DEBT is the caller's decision.
"""


class MealEngineError(Exception):
    """
    Base exception for all meal engine errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "MEAL_ENGINE_ERROR"


# Lookup


class EntityNotFoundError(MealEngineError):
    """Entity with given ID does not exist or belongs to another company."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id, entity_type: str | None = None):
        if entity_type is not None:
            self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type.capitalize()} not found: {entity_id}")


class ProjectNotFoundError(EntityNotFoundError):
    entity_type = "project"


class EmployeeNotFoundError(EntityNotFoundError):
    entity_type = "employee"


class SubscriptionNotFoundError(EntityNotFoundError):
    entity_type = "subscription"


class OrderNotFoundError(EntityNotFoundError):
    entity_type = "order"


# State / input


class InvalidStateError(MealEngineError):
    """Operation is not legal for the entity's current state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id,
        current_state: str,
        operation: str,
        detail: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.operation = operation
        self.detail = detail
        message = (
            f"Cannot {operation} {entity_type} {entity_id} "
            f"in state {current_state}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ValidationError(MealEngineError):
    """Malformed input rejected before any state is touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Business limits


class FreezeLimitExceededError(MealEngineError):
    """
    Employee already used the weekly freeze allowance.

    ``offending_date`` is the assignment date whose freeze would exceed
    the limit; for a period freeze it identifies the day that stopped
    the whole batch.
    """

    code: str = "FREEZE_LIMIT_EXCEEDED"

    def __init__(
        self,
        employee_id,
        offending_date,
        week_start,
        used: int,
        limit: int,
    ):
        self.employee_id = str(employee_id)
        self.offending_date = str(offending_date)
        self.week_start = str(week_start)
        self.used = used
        self.limit = limit
        super().__init__(
            f"Freeze limit reached for employee {employee_id} on "
            f"{offending_date}: {used}/{limit} used in week of {week_start}"
        )


class BudgetExceededError(MealEngineError):
    """Spend would push the project past budget plus overdraft."""

    code: str = "BUDGET_EXCEEDED"

    def __init__(self, project_id, requested, spent, available):
        self.project_id = str(project_id)
        self.requested = str(requested)
        self.spent = str(spent)
        self.available = str(available)
        super().__init__(
            f"Budget exceeded for project {project_id}: "
            f"spent {spent} + requested {requested} > available {available}"
        )


class CutoffPassedError(MealEngineError):
    """Same-day change attempted at or after the project's cutoff time."""

    code: str = "CUTOFF_PASSED"

    def __init__(self, project_id, target_date, cutoff_time, local_now):
        self.project_id = str(project_id)
        self.target_date = str(target_date)
        self.cutoff_time = str(cutoff_time)
        self.local_now = str(local_now)
        super().__init__(
            f"Cutoff {cutoff_time} passed for project {project_id} "
            f"on {target_date} (local time {local_now})"
        )


# Concurrency


class ConcurrencyError(MealEngineError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Version token was stale on write and the single retry also lost."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Timeouts


class EngineTimeoutError(MealEngineError):
    """Base exception for bounded waits that expired."""

    code: str = "TIMEOUT"


class LockTimeoutError(EngineTimeoutError):
    """Keyed lock was not acquired within the configured bound."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, resource: str, timeout_seconds: float):
        self.resource = resource
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock on {resource}"
        )


class StorageTimeoutError(EngineTimeoutError):
    """Storage round trip (pool checkout or row lock wait) expired."""

    code: str = "STORAGE_TIMEOUT"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage timeout during {operation}: {detail}")
