"""
Module: credit_workflow.selectors.workflow_selector
Responsibility: Read-only work-queue views over workflow instances: per-role
    and per-user queues, overdue and pending lists, and stage/role counts.
    Converts domain instances to frozen summary DTOs.
Architecture position: Selectors.  May import from domain/.  Reads through
    the instance repository protocol, so it works over any store.

Invariants enforced:
    - Read-only: never calls add/update on the repository.
    - Completed instances never appear (the store excludes them).
    - ``is_sla_due`` on each summary is evaluated against one ``now`` per
      call, taken from the injected clock.

Failure modes:
    - ValueError on a non-positive page or page size.
    - WorkflowStoreError from the underlying store propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from credit_workflow.domain.clock import Clock, SystemClock
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.repositories import WorkflowInstanceRepository
from credit_workflow.domain.values import CaseStatus


@dataclass(frozen=True)
class WorkflowInstanceSummary:
    """Queue row for one open workflow instance."""

    instance_id: UUID
    case_id: UUID
    current_status: CaseStatus
    stage_display_name: str
    assigned_role: str
    assigned_to_user_id: UUID | None
    sla_due_at: datetime | None
    is_sla_breached: bool
    is_sla_due: bool


class WorkflowQueueSelector:
    """
    Selector for workflow work-queue queries.

    Contract:
        All list methods return WorkflowInstanceSummary DTOs in the store's
        order (earliest deadline first for role, user, overdue and pending
        queues).

    Non-goals:
        - Does not mark breaches; use WorkflowService.check_and_mark_sla_breaches.
    """

    def __init__(
        self,
        instance_repository: WorkflowInstanceRepository,
        clock: Clock | None = None,
    ):
        self._instances = instance_repository
        self._clock = clock or SystemClock()

    def _to_dto(self, instance: WorkflowInstance, now: datetime) -> WorkflowInstanceSummary:
        """Convert domain instance to DTO."""
        return WorkflowInstanceSummary(
            instance_id=instance.id,
            case_id=instance.case_id,
            current_status=instance.current_status,
            stage_display_name=instance.current_stage_display_name,
            assigned_role=instance.assigned_role,
            assigned_to_user_id=instance.assigned_to_user_id,
            sla_due_at=instance.sla_due_at,
            is_sla_breached=instance.is_sla_breached,
            is_sla_due=instance.is_sla_due(now),
        )

    def _summaries(self, instances: Iterable[WorkflowInstance]) -> list[WorkflowInstanceSummary]:
        now = self._clock.now()
        return [self._to_dto(instance, now) for instance in instances]

    def queue_for_role(
        self,
        role: str,
        page: int = 1,
        page_size: int = 20,
    ) -> list[WorkflowInstanceSummary]:
        """One page of the open queue owned by ``role``."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        start = (page - 1) * page_size
        instances = self._instances.get_by_assigned_role(role)
        return self._summaries(instances[start:start + page_size])

    def queue_for_user(self, user_id: UUID) -> list[WorkflowInstanceSummary]:
        return self._summaries(self._instances.get_by_assigned_user(user_id))

    def overdue(self) -> list[WorkflowInstanceSummary]:
        """Open instances past their deadline, breached or not yet marked."""
        return self._summaries(
            self._instances.get_overdue_by_deadline(self._clock.now())
        )

    def pending(self, page: int = 1, page_size: int = 20) -> list[WorkflowInstanceSummary]:
        return self._summaries(self._instances.get_pending(page, page_size))

    def stage_counts(self, statuses: Iterable[CaseStatus]) -> dict[CaseStatus, int]:
        return {
            status: self._instances.count_by_current_status(status)
            for status in statuses
        }

    def role_counts(self, roles: Iterable[str]) -> dict[str, int]:
        return {role: self._instances.count_by_assigned_role(role) for role in roles}
