"""
Module: credit_workflow.repositories.memory
Responsibility: Process-local implementations of the definition and instance
    stores, for tests, development, and single-process deployments.
Architecture position: Repositories.  May import from domain/ and exceptions.

Invariants enforced:
    - Copy-on-read and copy-on-write: callers never share state with the
      store, so a rejected operation cannot leak a half-applied mutation.
    - One instance per case (DuplicateInstanceError on add).
    - update() is a compare-and-swap on ``version`` under a lock; the loser
      gets OptimisticLockError and the winner's state is kept.
    - At most one active definition per case type.

Failure modes:
    - DuplicateInstanceError on a second add for the same case.
    - OptimisticLockError on a stale instance version.
    - WorkflowStoreError when updating an entity that was never added.
    - ImmutabilityViolationError when a definition update drops or edits a
      stored stage or transition.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from uuid import UUID

from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.values import CaseStatus, CaseType
from credit_workflow.exceptions import (
    DuplicateInstanceError,
    ImmutabilityViolationError,
    OptimisticLockError,
    WorkflowStoreError,
)
from credit_workflow.logging_config import get_logger

logger = get_logger("repositories.memory")


def deadline_order(instance: WorkflowInstance) -> tuple:
    """Sort key: earliest deadline first, instances without a deadline last."""
    return (
        instance.sla_due_at is None,
        instance.sla_due_at or instance.entered_current_stage_at,
        instance.entered_current_stage_at,
    )


class InMemoryWorkflowDefinitionRepository:
    """Dict-backed definition store."""

    def __init__(self) -> None:
        self._definitions: dict[UUID, WorkflowDefinition] = {}
        self._lock = threading.Lock()

    def get_by_id(self, definition_id: UUID) -> WorkflowDefinition | None:
        with self._lock:
            definition = self._definitions.get(definition_id)
            return copy.deepcopy(definition) if definition else None

    def get_active_by_case_type(self, case_type: CaseType) -> WorkflowDefinition | None:
        with self._lock:
            for definition in self._definitions.values():
                if definition.case_type == case_type and definition.is_active:
                    return copy.deepcopy(definition)
            return None

    def get_all(self) -> list[WorkflowDefinition]:
        with self._lock:
            definitions = sorted(
                self._definitions.values(),
                key=lambda d: (d.case_type.value, -d.version),
            )
            return [copy.deepcopy(d) for d in definitions]

    def add(self, definition: WorkflowDefinition) -> None:
        with self._lock:
            if definition.id in self._definitions:
                raise WorkflowStoreError(
                    "WorkflowDefinition", str(definition.id), "already stored",
                )
            self._store(definition)

    def update(self, definition: WorkflowDefinition) -> None:
        with self._lock:
            if definition.id not in self._definitions:
                raise WorkflowStoreError(
                    "WorkflowDefinition", str(definition.id), "not found",
                )
            violation = self._definitions[definition.id].append_only_violation(definition)
            if violation is not None:
                element, reason = violation
                raise ImmutabilityViolationError(
                    "WorkflowDefinition", f"{definition.id}/{element}", reason,
                )
            self._store(definition)

    def _store(self, definition: WorkflowDefinition) -> None:
        if definition.is_active:
            for other in self._definitions.values():
                if (
                    other.id != definition.id
                    and other.case_type == definition.case_type
                    and other.is_active
                ):
                    other.deactivate()
                    logger.info(
                        "definition_deactivated",
                        extra={
                            "definition_id": str(other.id),
                            "case_type": other.case_type.value,
                            "superseded_by": str(definition.id),
                        },
                    )
        self._definitions[definition.id] = copy.deepcopy(definition)


class InMemoryWorkflowInstanceRepository:
    """Dict-backed instance store with optimistic versioning."""

    def __init__(self) -> None:
        self._instances: dict[UUID, WorkflowInstance] = {}
        self._by_case: dict[UUID, UUID] = {}
        self._lock = threading.Lock()

    def _open(self) -> list[WorkflowInstance]:
        return [i for i in self._instances.values() if not i.is_completed]

    def get_by_id(self, instance_id: UUID) -> WorkflowInstance | None:
        with self._lock:
            instance = self._instances.get(instance_id)
            return copy.deepcopy(instance) if instance else None

    def get_by_case_id(self, case_id: UUID) -> WorkflowInstance | None:
        with self._lock:
            instance_id = self._by_case.get(case_id)
            if instance_id is None:
                return None
            return copy.deepcopy(self._instances[instance_id])

    def get_by_current_status(self, status: CaseStatus) -> list[WorkflowInstance]:
        with self._lock:
            matches = [i for i in self._open() if i.current_status == status]
            matches.sort(key=lambda i: i.entered_current_stage_at)
            return copy.deepcopy(matches)

    def get_by_assigned_role(self, role: str) -> list[WorkflowInstance]:
        with self._lock:
            matches = [i for i in self._open() if i.assigned_role == role]
            matches.sort(key=deadline_order)
            return copy.deepcopy(matches)

    def get_by_assigned_user(self, user_id: UUID) -> list[WorkflowInstance]:
        with self._lock:
            matches = [i for i in self._open() if i.assigned_to_user_id == user_id]
            matches.sort(key=deadline_order)
            return copy.deepcopy(matches)

    def get_overdue_by_deadline(self, now: datetime) -> list[WorkflowInstance]:
        with self._lock:
            matches = [
                i for i in self._open()
                if i.sla_due_at is not None and i.sla_due_at <= now
            ]
            matches.sort(key=deadline_order)
            return copy.deepcopy(matches)

    def get_pending(self, page: int, page_size: int) -> list[WorkflowInstance]:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        with self._lock:
            matches = sorted(self._open(), key=deadline_order)
            start = (page - 1) * page_size
            return copy.deepcopy(matches[start:start + page_size])

    def count_by_current_status(self, status: CaseStatus) -> int:
        with self._lock:
            return sum(1 for i in self._open() if i.current_status == status)

    def count_by_assigned_role(self, role: str) -> int:
        with self._lock:
            return sum(1 for i in self._open() if i.assigned_role == role)

    def add(self, instance: WorkflowInstance) -> None:
        with self._lock:
            if instance.case_id in self._by_case:
                raise DuplicateInstanceError(str(instance.case_id))
            if instance.id in self._instances:
                raise WorkflowStoreError(
                    "WorkflowInstance", str(instance.id), "already stored",
                )
            self._instances[instance.id] = copy.deepcopy(instance)
            self._by_case[instance.case_id] = instance.id

    def update(self, instance: WorkflowInstance) -> None:
        """Compare-and-swap on ``version``.

        On success both the stored copy and the caller's ``instance`` carry
        the incremented version.
        """
        with self._lock:
            current = self._instances.get(instance.id)
            if current is None:
                raise WorkflowStoreError(
                    "WorkflowInstance", str(instance.id), "not found",
                )
            if current.version != instance.version:
                logger.warning(
                    "optimistic_lock_conflict",
                    extra={
                        "instance_id": str(instance.id),
                        "expected_version": instance.version,
                        "stored_version": current.version,
                    },
                )
                raise OptimisticLockError("WorkflowInstance", str(instance.id))
            instance.version += 1
            self._instances[instance.id] = copy.deepcopy(instance)
