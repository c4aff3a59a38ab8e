"""
credit_workflow.services.factory -- Composition root for SQL-backed services.

Responsibility:
    Wire a ``WorkflowService`` and a ``WorkflowQueueSelector`` over the SQL
    repositories for one Session.  Scripts and request handlers call these
    instead of assembling repositories themselves.

Architecture position:
    Services layer, composition only.  The one place that imports both the
    service and the concrete SQL repositories.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from credit_workflow.domain.clock import Clock
from credit_workflow.domain.values import SUPERUSER_ROLE
from credit_workflow.repositories.sql import (
    SqlWorkflowDefinitionRepository,
    SqlWorkflowInstanceRepository,
)
from credit_workflow.selectors.workflow_selector import WorkflowQueueSelector
from credit_workflow.services.workflow_service import WorkflowService


def build_workflow_service(
    session: Session,
    clock: Clock | None = None,
    superuser_role: str = SUPERUSER_ROLE,
) -> WorkflowService:
    """WorkflowService over the SQL stores bound to ``session``.

    The caller owns the transaction (see ``db.engine.session_scope``).
    """
    return WorkflowService(
        SqlWorkflowDefinitionRepository(session),
        SqlWorkflowInstanceRepository(session),
        clock=clock,
        superuser_role=superuser_role,
    )


def build_queue_selector(session: Session, clock: Clock | None = None) -> WorkflowQueueSelector:
    return WorkflowQueueSelector(SqlWorkflowInstanceRepository(session), clock=clock)
