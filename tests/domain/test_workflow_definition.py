"""
Tests for workflow definitions (``credit_workflow.domain.definition``).

Invariants tested:
- Stages are unique by status.
- Transitions reference only statuses that have a stage.
- The (from, to, action) triple is the transition key; (from, action)
  alone may map to several destinations.
- Role check: required role or superuser.
"""

import pytest

from credit_workflow.domain.definition import Stage, Transition, WorkflowDefinition
from credit_workflow.domain.results import WorkflowErrorCode
from credit_workflow.domain.values import (
    SUPERUSER_ROLE,
    CaseStatus,
    CaseType,
    Roles,
    WorkflowAction,
)


@pytest.fixture
def definition() -> WorkflowDefinition:
    d = WorkflowDefinition.create("Test", "desc", CaseType.CORPORATE).unwrap()
    d.add_stage(CaseStatus.DRAFT, "Draft", Roles.LOAN_OFFICER, sort_order=2)
    d.add_stage(CaseStatus.SUBMITTED, "Submitted", Roles.LOAN_OFFICER, sla_hours=4, sort_order=1)
    d.add_stage(CaseStatus.REJECTED, "Rejected", "None", is_terminal=True, sort_order=3)
    return d


class TestCreate:

    def test_new_definition_is_active_version_one(self):
        d = WorkflowDefinition.create("Corporate", "", CaseType.CORPORATE).unwrap()
        assert d.is_active
        assert d.version == 1
        assert d.case_type is CaseType.CORPORATE
        assert d.stages == ()
        assert d.transitions == ()

    def test_blank_name_rejected(self):
        result = WorkflowDefinition.create("  ", "", CaseType.RETAIL)
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED


class TestAddStage:

    def test_duplicate_status_rejected(self, definition):
        result = definition.add_stage(CaseStatus.DRAFT, "Again", Roles.LOAN_OFFICER)
        assert result.error == WorkflowErrorCode.ALREADY_EXISTS
        assert definition.get_stage(CaseStatus.DRAFT).display_name == "Draft"

    @pytest.mark.parametrize(
        "display_name,role,sla",
        [("", Roles.LOAN_OFFICER, 0), ("Review", " ", 0), ("Review", Roles.LOAN_OFFICER, -1)],
    )
    def test_invalid_stage_rejected(self, definition, display_name, role, sla):
        result = definition.add_stage(CaseStatus.HO_REVIEW, display_name, role, sla_hours=sla)
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED
        assert definition.get_stage(CaseStatus.HO_REVIEW) is None

    def test_stages_ordered_by_sort_order(self, definition):
        assert [s.status for s in definition.stages] == [
            CaseStatus.SUBMITTED,
            CaseStatus.DRAFT,
            CaseStatus.REJECTED,
        ]

    def test_stage_sla(self, definition):
        assert definition.get_stage(CaseStatus.DRAFT).sla is None
        assert definition.get_stage(CaseStatus.SUBMITTED).sla.total_seconds() == 4 * 3600


class TestAddTransition:

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (CaseStatus.DRAFT, CaseStatus.APPROVED),
            (CaseStatus.APPROVED, CaseStatus.DRAFT),
        ],
    )
    def test_unknown_stage_rejected(self, definition, from_status, to_status):
        result = definition.add_transition(
            from_status, to_status, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        )
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED
        assert definition.transitions == ()

    def test_duplicate_triple_rejected(self, definition):
        definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        ).unwrap()
        result = definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, Roles.CREDIT_OFFICER,
        )
        assert result.error == WorkflowErrorCode.ALREADY_EXISTS
        assert len(definition.transitions) == 1

    def test_blank_role_rejected(self, definition):
        result = definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, "",
        )
        assert result.error == WorkflowErrorCode.VALIDATION_FAILED

    def test_same_action_multiple_destinations_preserved(self, definition):
        definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        ).unwrap()
        definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.REJECTED, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        ).unwrap()

        available = definition.get_available_transitions(CaseStatus.DRAFT)
        assert [t.to_status for t in available] == [CaseStatus.SUBMITTED, CaseStatus.REJECTED]
        assert definition.get_transition(
            CaseStatus.DRAFT, CaseStatus.REJECTED, WorkflowAction.SUBMIT,
        ).to_status is CaseStatus.REJECTED


class TestCanTransition:

    @pytest.fixture(autouse=True)
    def _transition(self, definition):
        definition.add_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT,
            Roles.CREDIT_OFFICER, requires_comment=True,
        ).unwrap()

    def test_required_role_allowed(self, definition):
        assert definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT, Roles.CREDIT_OFFICER,
        )

    def test_other_role_denied(self, definition):
        assert not definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT, Roles.LOAN_OFFICER,
        )

    def test_superuser_allowed(self, definition):
        assert definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT, SUPERUSER_ROLE,
        )

    def test_custom_superuser_role(self, definition):
        assert definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT,
            "Root", superuser_role="Root",
        )
        assert not definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.REJECTED, WorkflowAction.REJECT,
            SUPERUSER_ROLE, superuser_role="Root",
        )

    def test_missing_transition_denied_even_for_superuser(self, definition):
        assert not definition.can_transition(
            CaseStatus.SUBMITTED, CaseStatus.DRAFT, WorkflowAction.REJECT, SUPERUSER_ROLE,
        )


class TestLifecycle:

    def test_deactivate_and_activate(self, definition):
        definition.deactivate()
        assert not definition.is_active
        definition.activate()
        assert definition.is_active

    def test_next_version_copies_with_new_identity(self, definition):
        definition.add_transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        ).unwrap()
        successor = definition.next_version()

        assert successor.id != definition.id
        assert successor.version == definition.version + 1
        assert successor.is_active
        assert successor.stages == definition.stages
        assert successor.transitions == definition.transitions

        successor.add_stage(CaseStatus.HO_REVIEW, "HO Review", Roles.HO_REVIEWER).unwrap()
        assert definition.get_stage(CaseStatus.HO_REVIEW) is None

    def test_value_objects_are_frozen(self):
        stage = Stage(CaseStatus.DRAFT, "Draft", Roles.LOAN_OFFICER)
        transition = Transition(
            CaseStatus.DRAFT, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT, Roles.LOAN_OFFICER,
        )
        with pytest.raises(AttributeError):
            stage.sla_hours = 5  # type: ignore[misc]
        with pytest.raises(AttributeError):
            transition.required_role = "x"  # type: ignore[misc]
