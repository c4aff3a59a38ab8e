"""Workflow orchestration services."""

from credit_workflow.services.factory import build_queue_selector, build_workflow_service
from credit_workflow.services.retry_service import run_with_conflict_retry
from credit_workflow.services.workflow_service import AvailableAction, WorkflowService

__all__ = [
    "AvailableAction",
    "WorkflowService",
    "build_queue_selector",
    "build_workflow_service",
    "run_with_conflict_retry",
]
