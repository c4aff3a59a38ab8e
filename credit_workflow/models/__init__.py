"""ORM models for the credit workflow engine."""

from credit_workflow.models.workflow import (
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
    WorkflowStageModel,
    WorkflowTransitionLogModel,
    WorkflowTransitionModel,
)

__all__ = [
    "WorkflowDefinitionModel",
    "WorkflowInstanceModel",
    "WorkflowStageModel",
    "WorkflowTransitionLogModel",
    "WorkflowTransitionModel",
]
