"""
Workflow instance state (``credit_workflow.domain.instance``).

Responsibility
--------------
The live, mutable workflow state of one case: current status, owning
role/user, stage-entry time, SLA deadline, breach and completion flags,
and the ordered, append-only transition history.

Architecture position
---------------------
**Domain layer** -- ZERO I/O.  Never reads the wall clock: every
time-dependent operation receives ``now`` from the caller's ``Clock``.

Invariants enforced
-------------------
* Once ``is_completed`` is true every ``transition`` fails
  ``ALREADY_COMPLETED`` and leaves the state unchanged.
* Every executed transition appends exactly one ``TransitionLogEntry``
  whose ``from_status`` is the status held *before* the transition.
* ``transition_history`` is append-only; entries are frozen.

Non-goals
---------
* Role and comment policy are NOT re-validated here.  That belongs to
  ``WorkflowService``; the instance enforces only the completed-state
  invariant and bookkeeping consistency.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from credit_workflow.domain.results import WorkflowErrorCode, WorkflowResult
from credit_workflow.domain.values import CaseStatus, WorkflowAction


def _due_at(now: datetime, sla_hours: int) -> datetime | None:
    if sla_hours <= 0:
        return None
    return now + timedelta(hours=sla_hours)


@dataclass(frozen=True)
class TransitionLogEntry:
    """Immutable audit record of one executed transition or queue action.

    ``from_status == to_status`` for assignment and escalation entries.
    """

    instance_id: UUID
    from_status: CaseStatus
    to_status: CaseStatus
    action: WorkflowAction
    performed_by_user_id: UUID
    performed_at: datetime
    comment: str | None = None
    duration_in_previous_stage: timedelta | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass
class WorkflowInstance:
    """Mutable workflow state for one case, pinned to one definition.

    Contract:
        Mutated only through ``transition``, ``assign_to_user``,
        ``unassign_from_user``, ``escalate`` and ``mark_sla_breached``.
        Never deleted.

    ``version`` is the optimistic-concurrency token; only stores change it.
    """

    case_id: UUID
    definition_id: UUID
    current_status: CaseStatus
    current_stage_display_name: str
    assigned_role: str
    entered_current_stage_at: datetime
    sla_due_at: datetime | None = None
    assigned_to_user_id: UUID | None = None
    assigned_at: datetime | None = None
    is_sla_breached: bool = False
    escalation_level: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None
    final_status: CaseStatus | None = None
    transition_history: list[TransitionLogEntry] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    version: int = 0

    @classmethod
    def create(
        cls,
        case_id: UUID,
        definition_id: UUID,
        initial_status: CaseStatus,
        stage_display_name: str,
        assigned_role: str,
        sla_hours: int,
        initiated_by_user_id: UUID,
        now: datetime,
    ) -> WorkflowResult[WorkflowInstance]:
        """Create an instance pinned to ``initial_status`` at ``now``.

        ``initiated_by_user_id`` is accepted for the caller's audit trail;
        creation itself writes no history entry.
        """
        if sla_hours < 0:
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "SLA hours cannot be negative",
                sla_hours=sla_hours,
            )
        return WorkflowResult.ok(
            cls(
                case_id=case_id,
                definition_id=definition_id,
                current_status=initial_status,
                current_stage_display_name=stage_display_name,
                assigned_role=assigned_role,
                entered_current_stage_at=now,
                sla_due_at=_due_at(now, sla_hours),
            )
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _completed_failure(self, operation: str) -> WorkflowResult:
        return WorkflowResult.fail(
            WorkflowErrorCode.ALREADY_COMPLETED,
            f"Cannot {operation}: workflow is already completed "
            f"in {self.current_status.value}",
            instance_id=str(self.id),
            current_status=self.current_status.value,
        )

    def _append_log(
        self,
        to_status: CaseStatus,
        action: WorkflowAction,
        performed_by_user_id: UUID,
        now: datetime,
        comment: str | None,
        duration: timedelta | None = None,
    ) -> TransitionLogEntry:
        entry = TransitionLogEntry(
            instance_id=self.id,
            from_status=self.current_status,
            to_status=to_status,
            action=action,
            performed_by_user_id=performed_by_user_id,
            performed_at=now,
            comment=comment,
            duration_in_previous_stage=duration,
        )
        self.transition_history.append(entry)
        return entry

    def transition(
        self,
        to_status: CaseStatus,
        action: WorkflowAction,
        new_stage_display_name: str,
        new_assigned_role: str,
        new_sla_hours: int,
        performed_by_user_id: UUID,
        now: datetime,
        comment: str | None = None,
        is_terminal: bool = False,
    ) -> WorkflowResult[TransitionLogEntry]:
        if self.is_completed:
            return self._completed_failure("transition")

        entry = self._append_log(
            to_status,
            action,
            performed_by_user_id,
            now,
            comment,
            duration=now - self.entered_current_stage_at,
        )

        self.current_status = to_status
        self.current_stage_display_name = new_stage_display_name
        self.assigned_role = new_assigned_role
        self.assigned_to_user_id = None
        self.assigned_at = None
        self.entered_current_stage_at = now
        self.sla_due_at = _due_at(now, new_sla_hours)
        self.is_sla_breached = False
        self.escalation_level = 0

        if is_terminal:
            self.is_completed = True
            self.completed_at = now
            self.final_status = to_status

        return WorkflowResult.ok(entry)

    # ------------------------------------------------------------------
    # Queue handling
    # ------------------------------------------------------------------

    def assign_to_user(
        self,
        user_id: UUID,
        assigned_by_user_id: UUID,
        now: datetime,
    ) -> WorkflowResult[TransitionLogEntry]:
        if self.is_completed:
            return self._completed_failure("assign")

        self.assigned_to_user_id = user_id
        self.assigned_at = now
        entry = self._append_log(
            self.current_status,
            WorkflowAction.ASSIGN,
            assigned_by_user_id,
            now,
            f"Assigned to user {user_id}",
        )
        return WorkflowResult.ok(entry)

    def unassign_from_user(
        self,
        unassigned_by_user_id: UUID,
        now: datetime,
    ) -> WorkflowResult[TransitionLogEntry]:
        if self.is_completed:
            return self._completed_failure("unassign")
        if self.assigned_to_user_id is None:
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "Workflow is not assigned to anyone",
                instance_id=str(self.id),
            )

        previous_user_id = self.assigned_to_user_id
        self.assigned_to_user_id = None
        self.assigned_at = None
        entry = self._append_log(
            self.current_status,
            WorkflowAction.UNASSIGN,
            unassigned_by_user_id,
            now,
            f"Unassigned from user {previous_user_id}",
        )
        return WorkflowResult.ok(entry)

    def escalate(
        self,
        escalated_by_user_id: UUID,
        reason: str,
        now: datetime,
    ) -> WorkflowResult[TransitionLogEntry]:
        if self.is_completed:
            return self._completed_failure("escalate")

        self.escalation_level += 1
        entry = self._append_log(
            self.current_status,
            WorkflowAction.ESCALATE,
            escalated_by_user_id,
            now,
            reason,
        )
        return WorkflowResult.ok(entry)

    # ------------------------------------------------------------------
    # SLA
    # ------------------------------------------------------------------

    def mark_sla_breached(self) -> WorkflowResult[bool]:
        """Flag the current stage as overdue.  Idempotent.

        The returned value is True only when this call changed the flag.
        """
        if self.is_completed:
            return self._completed_failure("mark SLA breached")
        if self.is_sla_breached:
            return WorkflowResult.ok(False)
        self.is_sla_breached = True
        return WorkflowResult.ok(True)

    def is_sla_due(self, now: datetime) -> bool:
        if self.sla_due_at is None or self.is_sla_breached or self.is_completed:
            return False
        return now >= self.sla_due_at

    def time_in_current_stage(self, now: datetime) -> timedelta:
        return now - self.entered_current_stage_at

    def remaining_sla(self, now: datetime) -> timedelta | None:
        if self.sla_due_at is None:
            return None
        return max(self.sla_due_at - now, timedelta(0))
