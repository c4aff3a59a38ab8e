"""
Repository contracts (``credit_workflow.domain.repositories``).

Responsibility
--------------
Structural protocols for the two storage collaborators the workflow
service consumes.  Concrete stores live in ``credit_workflow.repositories``.

Invariants required of implementations
--------------------------------------
* Definition store: at most one active definition per case type at query
  time.  Adding or updating an active definition deactivates the other
  active definitions of the same case type.
* Instance store: at most one instance per case id (``add`` raises
  ``DuplicateInstanceError``).  ``update`` is an atomic read-modify-write
  per instance id; a stale ``version`` raises ``OptimisticLockError`` and
  never overwrites the winner.  Different instance ids never contend.
* Queue queries (status/role/user/overdue/pending/counts) exclude
  completed instances.
* Failures to reach the backing store raise ``WorkflowStoreError``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.values import CaseStatus, CaseType


@runtime_checkable
class WorkflowDefinitionRepository(Protocol):
    """Storage for workflow definitions."""

    def get_by_id(self, definition_id: UUID) -> WorkflowDefinition | None:
        ...

    def get_active_by_case_type(self, case_type: CaseType) -> WorkflowDefinition | None:
        ...

    def get_all(self) -> list[WorkflowDefinition]:
        """All definitions ordered by case type, newest version first."""
        ...

    def add(self, definition: WorkflowDefinition) -> None:
        ...

    def update(self, definition: WorkflowDefinition) -> None:
        ...


@runtime_checkable
class WorkflowInstanceRepository(Protocol):
    """Storage for workflow instances and their transition history."""

    def get_by_id(self, instance_id: UUID) -> WorkflowInstance | None:
        ...

    def get_by_case_id(self, case_id: UUID) -> WorkflowInstance | None:
        ...

    def get_by_current_status(self, status: CaseStatus) -> list[WorkflowInstance]:
        """Open instances in ``status``, oldest stage entry first."""
        ...

    def get_by_assigned_role(self, role: str) -> list[WorkflowInstance]:
        """Open instances owned by ``role``, earliest deadline first."""
        ...

    def get_by_assigned_user(self, user_id: UUID) -> list[WorkflowInstance]:
        """Open instances assigned to ``user_id``, earliest deadline first."""
        ...

    def get_overdue_by_deadline(self, now: datetime) -> list[WorkflowInstance]:
        """Open instances whose deadline is at or before ``now``."""
        ...

    def get_pending(self, page: int, page_size: int) -> list[WorkflowInstance]:
        """Open instances, earliest deadline first; ``page`` is 1-based."""
        ...

    def count_by_current_status(self, status: CaseStatus) -> int:
        ...

    def count_by_assigned_role(self, role: str) -> int:
        ...

    def add(self, instance: WorkflowInstance) -> None:
        ...

    def update(self, instance: WorkflowInstance) -> None:
        ...
