"""
Tests for the YAML definition loader (``credit_workflow_config.loader``).

Covers:
- The shipped corporate and retail definitions load and validate
- Errors name the offending stage or transition
- Checksums are deterministic and key-order independent
- Loaded definitions drive the engine
"""

from uuid import uuid4

import pytest
import yaml

from credit_workflow.domain.values import CaseStatus, CaseType, Roles, WorkflowAction
from credit_workflow.exceptions import DefinitionConfigError
from credit_workflow.repositories.memory import (
    InMemoryWorkflowDefinitionRepository,
    InMemoryWorkflowInstanceRepository,
)
from credit_workflow.services.workflow_service import WorkflowService
from credit_workflow_config.loader import (
    compute_checksum,
    load_default_definitions,
    load_definition,
    parse_definition,
)


def _minimal(**overrides) -> dict:
    data = {
        "name": "Minimal",
        "case_type": "retail",
        "stages": [
            {"status": "draft", "display_name": "Draft", "assigned_role": "LoanOfficer"},
            {"status": "submitted", "display_name": "Submitted", "assigned_role": "LoanOfficer",
             "sla_hours": 4},
        ],
        "transitions": [
            {"from_status": "draft", "to_status": "submitted", "action": "submit",
             "required_role": "LoanOfficer"},
        ],
    }
    data.update(overrides)
    return data


class TestDefaultDefinitions:

    @pytest.fixture(scope="class")
    def definitions(self):
        return {d.case_type: d for d in load_default_definitions()}

    def test_both_case_types_shipped(self, definitions):
        assert set(definitions) == {CaseType.CORPORATE, CaseType.RETAIL}
        assert all(d.is_active and d.version == 1 for d in definitions.values())

    def test_corporate_shape(self, definitions):
        corporate = definitions[CaseType.CORPORATE]
        assert len(corporate.stages) == 17
        assert len(corporate.transitions) == 19
        committee = corporate.get_stage(CaseStatus.COMMITTEE_CIRCULATION)
        assert committee.assigned_role == Roles.COMMITTEE_MEMBER
        assert committee.sla_hours == 72
        assert corporate.get_stage(CaseStatus.DISBURSED).is_terminal

    def test_retail_shape(self, definitions):
        retail = definitions[CaseType.RETAIL]
        assert len(retail.stages) == 10
        assert len(retail.transitions) == 11
        reject = retail.get_transition(
            CaseStatus.BRANCH_REVIEW, CaseStatus.REJECTED, WorkflowAction.REJECT,
        )
        assert reject.requires_comment
        assert reject.required_role == Roles.BRANCH_APPROVER

    def test_stages_sorted(self, definitions):
        for definition in definitions.values():
            orders = [s.sort_order for s in definition.stages]
            assert orders == sorted(orders)

    def test_drives_the_engine(self, definitions, clock, test_actor_id):
        definition_repo = InMemoryWorkflowDefinitionRepository()
        definition_repo.add(definitions[CaseType.RETAIL])
        service = WorkflowService(definition_repo, InMemoryWorkflowInstanceRepository(), clock=clock)

        instance = service.initialize_workflow(
            uuid4(), CaseType.RETAIL, CaseStatus.DRAFT, test_actor_id,
        ).unwrap()
        service.transition_to(
            instance.id, CaseStatus.SUBMITTED, WorkflowAction.SUBMIT,
            test_actor_id, Roles.LOAN_OFFICER,
        ).unwrap()
        actions = service.get_available_actions(instance.id, Roles.LOAN_OFFICER).unwrap()
        assert [(a.action, a.to_status) for a in actions] == [
            (WorkflowAction.MOVE_TO_NEXT_STAGE, CaseStatus.BRANCH_REVIEW),
        ]


class TestParseDefinition:

    def test_minimal(self):
        definition = parse_definition(_minimal())
        assert definition.name == "Minimal"
        assert definition.get_stage(CaseStatus.SUBMITTED).sla_hours == 4
        assert definition.version == 1

    def test_version_and_inactive(self):
        definition = parse_definition(_minimal(version=3, is_active=False))
        assert definition.version == 3
        assert not definition.is_active

    def test_condition_carried(self):
        data = _minimal()
        data["transitions"][0]["condition"] = "amount < 50000"
        definition = parse_definition(data)
        assert definition.transitions[0].condition_expression == "amount < 50000"

    def test_unknown_case_type(self):
        with pytest.raises(DefinitionConfigError, match="unknown CaseType 'mortgage'"):
            parse_definition(_minimal(case_type="mortgage"))

    def test_missing_name(self):
        data = _minimal()
        del data["name"]
        with pytest.raises(DefinitionConfigError, match="'name'"):
            parse_definition(data)

    def test_stage_error_names_stage(self):
        data = _minimal()
        data["stages"][1]["sla_hours"] = -2
        with pytest.raises(DefinitionConfigError, match=r"stage #2 \(submitted\)"):
            parse_definition(data)

    def test_duplicate_stage(self):
        data = _minimal()
        data["stages"].append(dict(data["stages"][0]))
        with pytest.raises(DefinitionConfigError, match="already exists"):
            parse_definition(data)

    def test_transition_error_names_transition(self):
        data = _minimal()
        data["transitions"].append(
            {"from_status": "submitted", "to_status": "approved", "action": "approve",
             "required_role": "BranchApprover"},
        )
        with pytest.raises(
            DefinitionConfigError, match=r"transition #2 \(submitted -> approved via approve\)",
        ):
            parse_definition(data)

    def test_unknown_action(self):
        data = _minimal()
        data["transitions"][0]["action"] = "teleport"
        with pytest.raises(DefinitionConfigError, match="unknown WorkflowAction"):
            parse_definition(data)

    def test_no_stages(self):
        with pytest.raises(DefinitionConfigError, match="no stages"):
            parse_definition(_minimal(stages=[], transitions=[]))

    def test_not_a_mapping(self):
        with pytest.raises(DefinitionConfigError):
            parse_definition(["not", "a", "mapping"])  # type: ignore[arg-type]

    def test_error_carries_source(self):
        with pytest.raises(DefinitionConfigError) as exc_info:
            parse_definition(_minimal(case_type="x"), source="custom.yaml")
        assert exc_info.value.source == "custom.yaml"


class TestLoadFromFiles:

    def test_load_definition_logs_checksum(self, tmp_path, captured_logs):
        path = tmp_path / "minimal.yaml"
        path.write_text(yaml.safe_dump(_minimal()))

        definition = load_definition(path)

        assert definition.name == "Minimal"
        loaded = [r for r in captured_logs() if r["message"] == "definition_loaded"]
        assert loaded[0]["checksum"] == compute_checksum(_minimal())
        assert loaded[0]["source"] == str(path)

    def test_directory_order(self, tmp_path):
        (tmp_path / "b.yaml").write_text(yaml.safe_dump(_minimal(name="B")))
        (tmp_path / "a.yaml").write_text(yaml.safe_dump(_minimal(name="A", case_type="corporate")))
        (tmp_path / "notes.txt").write_text("ignored")

        assert [d.name for d in load_default_definitions(tmp_path)] == ["A", "B"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_definition(tmp_path / "absent.yaml")


class TestChecksum:

    def test_key_order_independent(self):
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})

    def test_content_sensitive(self):
        assert compute_checksum(_minimal()) != compute_checksum(_minimal(version=2))
