"""
Typed Exception Hierarchy for the Credit Workflow Engine.

===============================================================================
WHEN THE ENGINE RAISES
===============================================================================

Business-rule rejections (bad role, illegal transition, missing comment,
duplicate case, completed case) are NOT raised.  They are returned as
``WorkflowResult`` values from ``credit_workflow.domain.results`` because a
rejected transition is an expected, frequent outcome -- a caller probing
feasibility is not a programming error.

Exceptions are reserved for:
  1. Infrastructure failures at the repository boundary (store unavailable,
     optimistic-lock conflicts, duplicate rows).
  2. Configuration failures (a YAML definition that cannot be built).
  3. Callers that explicitly opt in to exceptions via
     ``WorkflowResult.unwrap()``.

Every exception carries:
  - a CODE class attribute (machine-readable, API-safe)
  - structured attributes (not just a message string)

Example:
    try:
        instance = service.transition_to(...).unwrap()
    except UnauthorizedTransitionError as e:
        render(f"Requires role {e.details['required_role']}")
    except OptimisticLockError:
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CreditWorkflowError (base)
    |
    +-- WorkflowRejectedError
    |   +-- WorkflowNotFoundError
    |   +-- InvalidTransitionError
    |   +-- UnauthorizedTransitionError
    |   +-- WorkflowValidationError
    |   +-- WorkflowAlreadyExistsError
    |   +-- WorkflowAlreadyCompletedError
    |
    +-- StoreError
    |   +-- WorkflowStoreError
    |   +-- DuplicateInstanceError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- DefinitionConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Rejection       | NOT_FOUND                   | unwrap() on a NOT_FOUND result
                | INVALID_TRANSITION          | unwrap() on an INVALID_TRANSITION result
                | UNAUTHORIZED                | unwrap() on an UNAUTHORIZED result
                | VALIDATION_FAILED           | unwrap() on a VALIDATION_FAILED result
                | ALREADY_EXISTS              | unwrap() on an ALREADY_EXISTS result
                | ALREADY_COMPLETED           | unwrap() on an ALREADY_COMPLETED result
----------------|-----------------------------|-----------------------------------------
Store           | WORKFLOW_STORE_ERROR        | Repository cannot load/persist
                | DUPLICATE_INSTANCE          | Second instance row for one case
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Stale instance version on update
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a transition log row
----------------|-----------------------------|-----------------------------------------
Config          | DEFINITION_CONFIG_ERROR     | YAML definition failed to build

===============================================================================
HANDLING PATTERNS
===============================================================================

ConcurrencyError -> re-run the whole validate-then-transition call
                    (see ``services.retry_service.run_with_conflict_retry``).
StoreError       -> infrastructure; retry or surface as 5xx.
ImmutabilityError -> log security alert; never retried.
"""

from __future__ import annotations

from typing import Any


class CreditWorkflowError(Exception):
    """
    Base exception for all credit workflow errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "CREDIT_WORKFLOW_ERROR"


# Rejection exceptions (raised only by WorkflowResult.unwrap)


class WorkflowRejectedError(CreditWorkflowError):
    """A workflow operation was rejected by a business rule."""

    code: str = "WORKFLOW_REJECTED"

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        self.reason = reason
        self.details = dict(details or {})
        super().__init__(reason)


class WorkflowNotFoundError(WorkflowRejectedError):
    """Instance, definition, or stage could not be found."""

    code: str = "NOT_FOUND"


class InvalidTransitionError(WorkflowRejectedError):
    """No transition matches the requested (from, to, action) triple."""

    code: str = "INVALID_TRANSITION"


class UnauthorizedTransitionError(WorkflowRejectedError):
    """The caller's role is not authorized for the transition."""

    code: str = "UNAUTHORIZED"


class WorkflowValidationError(WorkflowRejectedError):
    """Input failed validation (missing comment, blank field, ...)."""

    code: str = "VALIDATION_FAILED"


class WorkflowAlreadyExistsError(WorkflowRejectedError):
    """The entity being created already exists."""

    code: str = "ALREADY_EXISTS"


class WorkflowAlreadyCompletedError(WorkflowRejectedError):
    """The workflow instance has reached a terminal stage."""

    code: str = "ALREADY_COMPLETED"


# Store-related exceptions


class StoreError(CreditWorkflowError):
    """Base exception for repository infrastructure errors."""

    code: str = "STORE_ERROR"


class WorkflowStoreError(StoreError):
    """The store could not load or persist an entity."""

    code: str = "WORKFLOW_STORE_ERROR"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Store failure on {entity_type} {entity_id}: {reason}"
        )


class DuplicateInstanceError(StoreError):
    """A workflow instance already exists for the case."""

    code: str = "DUPLICATE_INSTANCE"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Workflow instance already exists for case {case_id}")


# Concurrency-related exceptions


class ConcurrencyError(CreditWorkflowError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(CreditWorkflowError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Transition log entries are append-only once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class DefinitionConfigError(CreditWorkflowError):
    """A workflow definition could not be built from configuration."""

    code: str = "DEFINITION_CONFIG_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid workflow definition in {source}: {reason}")
