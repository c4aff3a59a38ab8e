"""
Pure domain layer.

This module contains the workflow value types, definition and instance
state machines, result values, and repository contracts, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (callers pass ``now`` from an injected Clock)
"""

from credit_workflow.domain.clock import Clock, DeterministicClock, SystemClock
from credit_workflow.domain.definition import Stage, Transition, WorkflowDefinition
from credit_workflow.domain.instance import TransitionLogEntry, WorkflowInstance
from credit_workflow.domain.repositories import (
    WorkflowDefinitionRepository,
    WorkflowInstanceRepository,
)
from credit_workflow.domain.results import WorkflowErrorCode, WorkflowResult
from credit_workflow.domain.values import (
    SUPERUSER_ROLE,
    CaseStatus,
    CaseType,
    Roles,
    WorkflowAction,
    action_display_name,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Values
    "CaseStatus",
    "CaseType",
    "Roles",
    "SUPERUSER_ROLE",
    "WorkflowAction",
    "action_display_name",
    # Results
    "WorkflowErrorCode",
    "WorkflowResult",
    # Definition
    "Stage",
    "Transition",
    "WorkflowDefinition",
    # Instance
    "TransitionLogEntry",
    "WorkflowInstance",
    # Repositories
    "WorkflowDefinitionRepository",
    "WorkflowInstanceRepository",
]
