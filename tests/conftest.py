"""
Pytest fixtures for the credit workflow test suite.

Provides:
- Structured-log capture and LogContext isolation
- A deterministic clock
- In-memory and SQLite-backed definition/instance repositories
- A sample retail definition and a WorkflowService wired to it

The SQLite fixtures use an in-memory database per test; no external
database is required.
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from credit_workflow.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from credit_workflow.domain.clock import DeterministicClock
from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.values import CaseStatus, CaseType, Roles, WorkflowAction
from credit_workflow.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from credit_workflow.repositories.memory import (
    InMemoryWorkflowDefinitionRepository,
    InMemoryWorkflowInstanceRepository,
)
from credit_workflow.repositories.sql import (
    SqlWorkflowDefinitionRepository,
    SqlWorkflowInstanceRepository,
)
from credit_workflow.services.workflow_service import WorkflowService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture credit_workflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.check_and_mark_sla_breaches()
            logs = captured_logs()
            assert any(r["message"] == "sla_sweep_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("credit_workflow")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and actor
# =============================================================================


@pytest.fixture
def test_actor_id():
    """Stable actor ID for tests."""
    return TEST_ACTOR_ID


@pytest.fixture
def clock() -> DeterministicClock:
    """Clock pinned at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Definitions
# =============================================================================


def build_retail_definition() -> WorkflowDefinition:
    """
    Small retail workflow used across the suite::

        Draft --Submit(LoanOfficer)--> BranchReview
        BranchReview --Approve(BranchApprover)--> Approved (terminal)
        BranchReview --Reject(BranchApprover, comment)--> Rejected (terminal)
        BranchReview --Return(BranchApprover, comment)--> BranchReturned
        BranchReturned --Submit(LoanOfficer)--> BranchReview
    """
    definition = WorkflowDefinition.create(
        "Retail Loan Workflow", "Test workflow", CaseType.RETAIL,
    ).unwrap()
    definition.add_stage(
        CaseStatus.DRAFT, "Draft", Roles.LOAN_OFFICER, sla_hours=0, sort_order=1,
    ).unwrap()
    definition.add_stage(
        CaseStatus.BRANCH_REVIEW, "Branch Review", Roles.BRANCH_APPROVER,
        sla_hours=24, sort_order=2,
    ).unwrap()
    definition.add_stage(
        CaseStatus.BRANCH_RETURNED, "Returned", Roles.LOAN_OFFICER,
        sla_hours=48, sort_order=3,
    ).unwrap()
    definition.add_stage(
        CaseStatus.APPROVED, "Approved", Roles.OPERATIONS,
        sort_order=4, is_terminal=True,
    ).unwrap()
    definition.add_stage(
        CaseStatus.REJECTED, "Rejected", "None",
        sort_order=5, is_terminal=True,
    ).unwrap()

    definition.add_transition(
        CaseStatus.DRAFT, CaseStatus.BRANCH_REVIEW, WorkflowAction.SUBMIT,
        Roles.LOAN_OFFICER,
    ).unwrap()
    definition.add_transition(
        CaseStatus.BRANCH_REVIEW, CaseStatus.APPROVED, WorkflowAction.APPROVE,
        Roles.BRANCH_APPROVER,
    ).unwrap()
    definition.add_transition(
        CaseStatus.BRANCH_REVIEW, CaseStatus.REJECTED, WorkflowAction.REJECT,
        Roles.BRANCH_APPROVER, requires_comment=True,
    ).unwrap()
    definition.add_transition(
        CaseStatus.BRANCH_REVIEW, CaseStatus.BRANCH_RETURNED, WorkflowAction.RETURN,
        Roles.BRANCH_APPROVER, requires_comment=True,
    ).unwrap()
    definition.add_transition(
        CaseStatus.BRANCH_RETURNED, CaseStatus.BRANCH_REVIEW, WorkflowAction.SUBMIT,
        Roles.LOAN_OFFICER,
    ).unwrap()
    return definition


@pytest.fixture
def retail_definition() -> WorkflowDefinition:
    return build_retail_definition()


# =============================================================================
# In-memory repositories and service
# =============================================================================


@pytest.fixture
def definition_repo(retail_definition) -> InMemoryWorkflowDefinitionRepository:
    repo = InMemoryWorkflowDefinitionRepository()
    repo.add(retail_definition)
    return repo


@pytest.fixture
def instance_repo() -> InMemoryWorkflowInstanceRepository:
    return InMemoryWorkflowInstanceRepository()


@pytest.fixture
def service(definition_repo, instance_repo, clock) -> WorkflowService:
    return WorkflowService(definition_repo, instance_repo, clock=clock)


@pytest.fixture
def start_case(service):
    """Initialize a retail case at Draft and return the instance."""

    def _start(case_id=None, status=CaseStatus.DRAFT):
        return service.initialize_workflow(
            case_id or uuid4(), CaseType.RETAIL, status, TEST_ACTOR_ID,
        ).unwrap()

    return _start


@pytest.fixture
def case_in_review(service, start_case):
    """A retail case already submitted to BranchReview (24h SLA)."""
    instance = start_case()
    return service.transition_to(
        instance.id, CaseStatus.BRANCH_REVIEW, WorkflowAction.SUBMIT,
        TEST_ACTOR_ID, Roles.LOAN_OFFICER,
    ).unwrap()


# =============================================================================
# SQLite-backed repositories
# =============================================================================


@pytest.fixture
def sql_session():
    """Session on a fresh in-memory SQLite database with all tables created."""
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    session = get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        drop_tables()
        reset_engine()


@pytest.fixture
def sql_definition_repo(sql_session) -> SqlWorkflowDefinitionRepository:
    return SqlWorkflowDefinitionRepository(sql_session)


@pytest.fixture
def sql_instance_repo(sql_session) -> SqlWorkflowInstanceRepository:
    return SqlWorkflowInstanceRepository(sql_session)


@pytest.fixture
def sql_service(sql_definition_repo, sql_instance_repo, retail_definition, clock) -> WorkflowService:
    sql_definition_repo.add(retail_definition)
    return WorkflowService(sql_definition_repo, sql_instance_repo, clock=clock)
