"""
Tests for workflow instance state (``credit_workflow.domain.instance``).

Invariants tested:
- Once completed, every transition fails ALREADY_COMPLETED and the state is
  unchanged.
- Each transition appends exactly one log entry whose from_status is the
  status held before the transition.
- SLA deadline bookkeeping (Scenario D).
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from credit_workflow.domain.clock import DeterministicClock
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.results import WorkflowErrorCode
from credit_workflow.domain.values import CaseStatus, Roles, WorkflowAction

ACTOR = uuid4()


def _create(clock, sla_hours=24, status=CaseStatus.BRANCH_REVIEW) -> WorkflowInstance:
    return WorkflowInstance.create(
        case_id=uuid4(),
        definition_id=uuid4(),
        initial_status=status,
        stage_display_name="Branch Review",
        assigned_role=Roles.BRANCH_APPROVER,
        sla_hours=sla_hours,
        initiated_by_user_id=ACTOR,
        now=clock.now(),
    ).unwrap()


@pytest.fixture
def clock():
    return DeterministicClock()


class TestCreate:

    def test_deadline_from_sla(self, clock):
        instance = _create(clock, sla_hours=24)
        assert instance.entered_current_stage_at == clock.now()
        assert instance.sla_due_at == clock.now() + timedelta(hours=24)
        assert instance.transition_history == []
        assert instance.version == 0

    def test_zero_sla_means_no_deadline(self, clock):
        instance = _create(clock, sla_hours=0)
        assert instance.sla_due_at is None
        assert instance.remaining_sla(clock.now()) is None
        assert not instance.is_sla_due(clock.advance(hours=1000))

    def test_negative_sla_rejected(self, clock):
        result = WorkflowInstance.create(
            uuid4(), uuid4(), CaseStatus.DRAFT, "Draft", Roles.LOAN_OFFICER, -1, ACTOR, clock.now(),
        )
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED


class TestTransition:

    def test_log_entry_records_previous_status(self, clock):
        instance = _create(clock)
        later = clock.advance(hours=3)

        entry = instance.transition(
            CaseStatus.BRANCH_RETURNED, WorkflowAction.RETURN, "Returned",
            Roles.LOAN_OFFICER, 48, ACTOR, later, comment="missing payslips",
        ).unwrap()

        assert entry.from_status is CaseStatus.BRANCH_REVIEW
        assert entry.to_status is CaseStatus.BRANCH_RETURNED
        assert entry.comment == "missing payslips"
        assert entry.duration_in_previous_stage == timedelta(hours=3)
        assert instance.transition_history == [entry]
        assert instance.current_status is CaseStatus.BRANCH_RETURNED
        assert instance.assigned_role == Roles.LOAN_OFFICER
        assert instance.entered_current_stage_at == later
        assert instance.sla_due_at == later + timedelta(hours=48)
        assert not instance.is_completed

    def test_transition_resets_assignment_breach_and_escalation(self, clock):
        instance = _create(clock)
        instance.assign_to_user(uuid4(), ACTOR, clock.now()).unwrap()
        instance.escalate(ACTOR, "slow", clock.now()).unwrap()
        instance.mark_sla_breached().unwrap()

        instance.transition(
            CaseStatus.BRANCH_RETURNED, WorkflowAction.RETURN, "Returned",
            Roles.LOAN_OFFICER, 0, ACTOR, clock.advance(hours=1),
        ).unwrap()

        assert instance.assigned_to_user_id is None
        assert instance.assigned_at is None
        assert not instance.is_sla_breached
        assert instance.escalation_level == 0
        assert instance.sla_due_at is None

    def test_terminal_transition_completes(self, clock):
        instance = _create(clock)
        now = clock.advance(minutes=5)
        instance.transition(
            CaseStatus.APPROVED, WorkflowAction.APPROVE, "Approved",
            Roles.OPERATIONS, 0, ACTOR, now, is_terminal=True,
        ).unwrap()

        assert instance.is_completed
        assert instance.completed_at == now
        assert instance.final_status is CaseStatus.APPROVED

    def test_completed_instance_rejects_every_operation(self, clock):
        instance = _create(clock)
        instance.transition(
            CaseStatus.REJECTED, WorkflowAction.REJECT, "Rejected",
            "None", 0, ACTOR, clock.now(), comment="fraud", is_terminal=True,
        ).unwrap()
        history_before = list(instance.transition_history)

        results = [
            instance.transition(
                CaseStatus.BRANCH_REVIEW, WorkflowAction.REOPEN, "Branch Review",
                Roles.BRANCH_APPROVER, 24, ACTOR, clock.now(),
            ),
            instance.assign_to_user(uuid4(), ACTOR, clock.now()),
            instance.escalate(ACTOR, "reason", clock.now()),
            instance.mark_sla_breached(),
        ]

        assert all(r.error == WorkflowErrorCode.ALREADY_COMPLETED for r in results)
        assert instance.current_status is CaseStatus.REJECTED
        assert instance.transition_history == history_before


class TestQueueHandling:

    def test_assign_and_unassign_log_entries(self, clock):
        instance = _create(clock)
        user = uuid4()

        assigned = instance.assign_to_user(user, ACTOR, clock.now()).unwrap()
        assert instance.assigned_to_user_id == user
        assert instance.assigned_at == clock.now()
        assert assigned.action is WorkflowAction.ASSIGN
        assert assigned.from_status is assigned.to_status is CaseStatus.BRANCH_REVIEW

        unassigned = instance.unassign_from_user(ACTOR, clock.now()).unwrap()
        assert instance.assigned_to_user_id is None
        assert unassigned.action is WorkflowAction.UNASSIGN
        assert len(instance.transition_history) == 2

    def test_unassign_when_unassigned_rejected(self, clock):
        instance = _create(clock)
        result = instance.unassign_from_user(ACTOR, clock.now())
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED
        assert instance.transition_history == []

    def test_escalate_increments_level(self, clock):
        instance = _create(clock)
        instance.escalate(ACTOR, "first", clock.now()).unwrap()
        entry = instance.escalate(ACTOR, "second", clock.now()).unwrap()
        assert instance.escalation_level == 2
        assert entry.comment == "second"
        assert entry.action is WorkflowAction.ESCALATE


class TestSla:

    def test_scenario_d_deadline_boundaries(self, clock):
        instance = _create(clock, sla_hours=24)
        due = instance.entered_current_stage_at + timedelta(hours=24)

        assert instance.sla_due_at == due
        assert not instance.is_sla_due(due - timedelta(minutes=1))
        assert instance.is_sla_due(due)
        assert instance.is_sla_due(due + timedelta(minutes=1))

    def test_mark_breached_is_idempotent(self, clock):
        instance = _create(clock)
        assert instance.mark_sla_breached().value is True
        assert instance.mark_sla_breached().value is False
        assert instance.is_sla_breached

    def test_breached_instance_no_longer_due(self, clock):
        instance = _create(clock, sla_hours=1)
        later = clock.advance(hours=2)
        assert instance.is_sla_due(later)
        instance.mark_sla_breached().unwrap()
        assert not instance.is_sla_due(later)

    def test_time_in_stage_and_remaining(self, clock):
        instance = _create(clock, sla_hours=10)
        now = clock.advance(hours=4)
        assert instance.time_in_current_stage(now) == timedelta(hours=4)
        assert instance.remaining_sla(now) == timedelta(hours=6)
        assert instance.remaining_sla(clock.advance(hours=20)) == timedelta(0)
