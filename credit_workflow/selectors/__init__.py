"""Read-side queue selectors."""

from credit_workflow.selectors.workflow_selector import (
    WorkflowInstanceSummary,
    WorkflowQueueSelector,
)

__all__ = [
    "WorkflowInstanceSummary",
    "WorkflowQueueSelector",
]
