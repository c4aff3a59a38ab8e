"""
Tests for conflict retry (``credit_workflow.services.retry_service``) and for
lost-update protection when two callers act on the same instance.
"""

import pytest

from credit_workflow.domain.values import CaseStatus, Roles, WorkflowAction
from credit_workflow.exceptions import OptimisticLockError, WorkflowValidationError
from credit_workflow.services.retry_service import run_with_conflict_retry


def _conflict():
    return OptimisticLockError("WorkflowInstance", "abc")


class TestRunWithConflictRetry:

    def test_returns_first_success(self):
        calls = []

        def operation():
            calls.append(1)
            return "done"

        assert run_with_conflict_retry(operation) == "done"
        assert len(calls) == 1

    def test_retries_conflicts_then_succeeds(self, captured_logs):
        outcomes = [_conflict(), _conflict(), "done"]

        def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert run_with_conflict_retry(operation, max_attempts=3) == "done"
        retries = [r for r in captured_logs() if r["message"] == "conflict_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_reraises_when_exhausted(self, captured_logs):
        def operation():
            raise _conflict()

        with pytest.raises(OptimisticLockError):
            run_with_conflict_retry(operation, max_attempts=2)
        assert any(r["message"] == "conflict_retry_exhausted" for r in captured_logs())

    def test_other_errors_not_retried(self):
        calls = []

        def operation():
            calls.append(1)
            raise WorkflowValidationError("bad input")

        with pytest.raises(WorkflowValidationError):
            run_with_conflict_retry(operation, max_attempts=5)
        assert len(calls) == 1

    def test_linear_backoff(self):
        slept = []
        outcomes = [_conflict(), _conflict(), "done"]

        def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        run_with_conflict_retry(
            operation, max_attempts=3, backoff_seconds=0.5, sleep=slept.append,
        )
        assert slept == [0.5, 1.0]

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            run_with_conflict_retry(lambda: None, max_attempts=0)


class TestLostUpdateProtection:

    def test_stale_copy_rejected(self, instance_repo, case_in_review, test_actor_id, clock):
        first = instance_repo.get_by_id(case_in_review.id)
        second = instance_repo.get_by_id(case_in_review.id)

        first.assign_to_user(test_actor_id, test_actor_id, clock.now()).unwrap()
        instance_repo.update(first)

        second.escalate(test_actor_id, "slow", clock.now()).unwrap()
        with pytest.raises(OptimisticLockError):
            instance_repo.update(second)

        stored = instance_repo.get_by_id(case_in_review.id)
        assert stored.assigned_to_user_id == test_actor_id
        assert stored.escalation_level == 0

    def test_service_call_succeeds_on_retry(self, service, case_in_review, test_actor_id):
        result = run_with_conflict_retry(
            lambda: service.transition_to(
                case_in_review.id, CaseStatus.APPROVED, WorkflowAction.APPROVE,
                test_actor_id, Roles.BRANCH_APPROVER,
            )
        )
        assert result.success
