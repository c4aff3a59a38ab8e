"""
Workflow result values (``credit_workflow.domain.results``).

Responsibility
--------------
Tagged success/failure result returned by every definition, instance and
service operation that can be rejected by a business rule.  Rejections are
expected outcomes (a caller probing whether a transition is feasible), so
they are returned, never raised.

Architecture position
---------------------
**Domain layer** -- pure value objects.  May import only from
``credit_workflow.exceptions`` (for ``unwrap``).

Invariants enforced
-------------------
* A successful result has ``error is None``; a failed one has a code.
* ``reason`` always names the specific cause (required role, attempted
  transition, missing comment) so callers can render a precise message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from credit_workflow.exceptions import (
    InvalidTransitionError,
    UnauthorizedTransitionError,
    WorkflowAlreadyCompletedError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
    WorkflowRejectedError,
    WorkflowValidationError,
)

T = TypeVar("T")


class WorkflowErrorCode(str, Enum):
    """Failure taxonomy for business-rule rejections."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED = "unauthorized"
    VALIDATION_FAILED = "validation_failed"
    ALREADY_EXISTS = "already_exists"
    ALREADY_COMPLETED = "already_completed"


_ERROR_TYPES: dict[WorkflowErrorCode, type[WorkflowRejectedError]] = {
    WorkflowErrorCode.NOT_FOUND: WorkflowNotFoundError,
    WorkflowErrorCode.INVALID_TRANSITION: InvalidTransitionError,
    WorkflowErrorCode.UNAUTHORIZED: UnauthorizedTransitionError,
    WorkflowErrorCode.VALIDATION_FAILED: WorkflowValidationError,
    WorkflowErrorCode.ALREADY_EXISTS: WorkflowAlreadyExistsError,
    WorkflowErrorCode.ALREADY_COMPLETED: WorkflowAlreadyCompletedError,
}


@dataclass(frozen=True)
class WorkflowResult(Generic[T]):
    """Outcome of a workflow operation.

    Contract: frozen.  Exactly one of (``value`` meaningful, ``error`` set)
    holds, selected by ``success``.
    """

    success: bool
    value: T | None = None
    error: WorkflowErrorCode | None = None
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: T | None = None) -> WorkflowResult[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls,
        error: WorkflowErrorCode,
        reason: str,
        **details: Any,
    ) -> WorkflowResult[T]:
        return cls(success=False, error=error, reason=reason, details=details)

    @property
    def is_failure(self) -> bool:
        return not self.success

    def unwrap(self) -> T:
        """Return the value or raise the typed rejection for this code."""
        if self.success:
            return self.value  # type: ignore[return-value]
        exc_type = _ERROR_TYPES.get(self.error, WorkflowRejectedError)  # type: ignore[arg-type]
        raise exc_type(self.reason, self.details)

    def cast(self) -> WorkflowResult[Any]:
        """Re-tag a failure for propagation under a different value type."""
        if self.success:
            raise ValueError("Only failed results can be re-tagged")
        return WorkflowResult(
            success=False,
            error=self.error,
            reason=self.reason,
            details=dict(self.details),
        )
