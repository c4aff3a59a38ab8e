"""
credit_workflow.services.retry_service -- Conflict retry for orchestrator calls.

Responsibility:
    Re-run a complete validate-then-persist call when the store reports an
    optimistic-lock conflict.  The engine never mutates before its single
    terminal write, so re-running from the top is always safe.

Architecture position:
    Services layer.  Wraps ``WorkflowService`` calls; knows nothing about
    their arguments.

Failure modes:
    - The last OptimisticLockError is re-raised once attempts run out.
    - Every other exception propagates on the first occurrence.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from credit_workflow.exceptions import OptimisticLockError
from credit_workflow.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")


def run_with_conflict_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    backoff_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``operation`` until it returns without an OptimisticLockError.

    ``operation`` must reload everything it needs on each call, e.g.
    ``lambda: service.transition_to(instance_id, ...)``.  Backoff grows
    linearly with the attempt number.

    Raises:
        ValueError: If max_attempts < 1.
        OptimisticLockError: If every attempt conflicted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except OptimisticLockError as exc:
            if attempt >= max_attempts:
                logger.warning(
                    "conflict_retry_exhausted",
                    extra={
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "entity_id": exc.entity_id,
                    },
                )
                raise
            logger.info(
                "conflict_retry",
                extra={
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "entity_id": exc.entity_id,
                },
            )
            if backoff_seconds > 0:
                sleep(backoff_seconds * attempt)

    raise AssertionError("unreachable")
