"""Concrete definition and instance stores."""

from credit_workflow.repositories.memory import (
    InMemoryWorkflowDefinitionRepository,
    InMemoryWorkflowInstanceRepository,
)
from credit_workflow.repositories.sql import (
    SqlWorkflowDefinitionRepository,
    SqlWorkflowInstanceRepository,
)

__all__ = [
    "InMemoryWorkflowDefinitionRepository",
    "InMemoryWorkflowInstanceRepository",
    "SqlWorkflowDefinitionRepository",
    "SqlWorkflowInstanceRepository",
]
