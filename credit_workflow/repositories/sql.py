"""
Module: credit_workflow.repositories.sql
Responsibility: SQLAlchemy-backed definition and instance stores.  Translate
    between domain objects and ORM rows, and turn driver-level failures into
    the typed store exceptions the service layer expects.
Architecture position: Repositories.  May import from models/, domain/,
    db/, and exceptions.

Invariants enforced:
    - Session ownership: the caller owns the Session and its transaction.
      Repositories flush, never commit.
    - Instance update is SELECT ... FOR UPDATE, then a version compare, then
      an UPDATE guarded by the loaded version (version_id_col).  Either check
      failing raises OptimisticLockError.
    - Transition log rows are only ever inserted: update() appends the
      entries whose ids are not yet stored, in history order.
    - Adding or updating an active definition deactivates the other active
      definitions of its case type before the flush that activates it.
    - Definition update is append-only: dropping or editing a stored stage or
      transition raises ImmutabilityViolationError before anything is written.

Failure modes:
    - DuplicateInstanceError when the case already has an instance row.
    - OptimisticLockError on a stale version.
    - WorkflowStoreError on any other SQLAlchemy failure.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.values import CaseStatus, CaseType
from credit_workflow.exceptions import (
    DuplicateInstanceError,
    ImmutabilityViolationError,
    OptimisticLockError,
    WorkflowStoreError,
)
from credit_workflow.logging_config import get_logger
from credit_workflow.models.workflow import (
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
    WorkflowStageModel,
    WorkflowTransitionLogModel,
    WorkflowTransitionModel,
)

logger = get_logger("repositories.sql")


def _deadline_first():
    return (
        WorkflowInstanceModel.sla_due_at.asc().nulls_last(),
        WorkflowInstanceModel.entered_current_stage_at.asc(),
    )


class SqlWorkflowDefinitionRepository:
    """
    Definition store over ``workflow_definitions`` and its child tables.

    Contract:
        Stages and transitions are append-only.  ``update`` may flip
        ``is_active``, change name/description, and append new stages or
        transitions; editing a stored stage or transition raises
        ImmutabilityViolationError.
    """

    def __init__(self, session: Session):
        self._session = session

    def get_by_id(self, definition_id: UUID) -> WorkflowDefinition | None:
        row = self._session.get(WorkflowDefinitionModel, definition_id)
        return row.to_dto() if row else None

    def get_active_by_case_type(self, case_type: CaseType) -> WorkflowDefinition | None:
        row = self._session.execute(
            select(WorkflowDefinitionModel)
            .where(WorkflowDefinitionModel.case_type == case_type.value)
            .where(WorkflowDefinitionModel.is_active.is_(True))
            .order_by(WorkflowDefinitionModel.version.desc())
        ).scalars().first()
        return row.to_dto() if row else None

    def get_all(self) -> list[WorkflowDefinition]:
        rows = self._session.execute(
            select(WorkflowDefinitionModel).order_by(
                WorkflowDefinitionModel.case_type,
                WorkflowDefinitionModel.version.desc(),
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def add(self, definition: WorkflowDefinition) -> None:
        try:
            if definition.is_active:
                self._deactivate_others(definition)
            self._session.add(WorkflowDefinitionModel.from_dto(definition))
            self._session.flush()
        except SQLAlchemyError as exc:
            raise WorkflowStoreError(
                "WorkflowDefinition", str(definition.id), str(exc),
            ) from exc
        logger.info(
            "definition_stored",
            extra={
                "definition_id": str(definition.id),
                "case_type": definition.case_type.value,
                "version": definition.version,
                "stage_count": len(definition.stages),
                "transition_count": len(definition.transitions),
            },
        )

    def update(self, definition: WorkflowDefinition) -> None:
        row = self._session.get(WorkflowDefinitionModel, definition.id)
        if row is None:
            raise WorkflowStoreError(
                "WorkflowDefinition", str(definition.id), "not found",
            )

        violation = row.to_dto().append_only_violation(definition)
        if violation is not None:
            element, reason = violation
            raise ImmutabilityViolationError(
                "WorkflowDefinition", f"{definition.id}/{element}", reason,
            )

        stored_statuses = {s.status for s in row.stages}
        row.stages.extend(
            WorkflowStageModel.from_dto(stage)
            for stage in definition.stages
            if stage.status.value not in stored_statuses
        )

        stored_keys = {t.to_dto().key for t in row.transitions}
        position = len(row.transitions)
        for transition in definition.transitions:
            if transition.key not in stored_keys:
                row.transitions.append(
                    WorkflowTransitionModel.from_dto(transition, position)
                )
                position += 1

        try:
            if definition.is_active and not row.is_active:
                self._deactivate_others(definition)
            row.name = definition.name
            row.description = definition.description
            row.is_active = definition.is_active
            self._session.flush()
        except SQLAlchemyError as exc:
            raise WorkflowStoreError(
                "WorkflowDefinition", str(definition.id), str(exc),
            ) from exc

    def _deactivate_others(self, definition: WorkflowDefinition) -> None:
        result = self._session.execute(
            update(WorkflowDefinitionModel)
            .where(WorkflowDefinitionModel.case_type == definition.case_type.value)
            .where(WorkflowDefinitionModel.is_active.is_(True))
            .where(WorkflowDefinitionModel.id != definition.id)
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            logger.info(
                "definition_deactivated",
                extra={
                    "case_type": definition.case_type.value,
                    "superseded_by": str(definition.id),
                    "count": result.rowcount,
                },
            )
        self._session.flush()


class SqlWorkflowInstanceRepository:
    """
    Instance store over ``workflow_instances`` and ``workflow_transition_logs``.

    Contract:
        Returned instances are detached domain objects; mutating them has no
        effect until ``update`` is called with them.

    Guarantees:
        - Queue queries exclude completed instances.
        - Deadline-ordered queries put instances without a deadline last.
    """

    def __init__(self, session: Session):
        self._session = session

    def _open(self):
        return select(WorkflowInstanceModel).where(
            WorkflowInstanceModel.is_completed.is_(False)
        )

    def _load(self, statement) -> list[WorkflowInstance]:
        try:
            rows = self._session.execute(statement).scalars().all()
        except SQLAlchemyError as exc:
            raise WorkflowStoreError("WorkflowInstance", "*", str(exc)) from exc
        return [row.to_dto() for row in rows]

    def get_by_id(self, instance_id: UUID) -> WorkflowInstance | None:
        row = self._session.get(WorkflowInstanceModel, instance_id)
        return row.to_dto() if row else None

    def get_by_case_id(self, case_id: UUID) -> WorkflowInstance | None:
        row = self._session.execute(
            select(WorkflowInstanceModel).where(WorkflowInstanceModel.case_id == case_id)
        ).scalar_one_or_none()
        return row.to_dto() if row else None

    def get_by_current_status(self, status: CaseStatus) -> list[WorkflowInstance]:
        return self._load(
            self._open()
            .where(WorkflowInstanceModel.current_status == status.value)
            .order_by(WorkflowInstanceModel.entered_current_stage_at)
        )

    def get_by_assigned_role(self, role: str) -> list[WorkflowInstance]:
        return self._load(
            self._open()
            .where(WorkflowInstanceModel.assigned_role == role)
            .order_by(*_deadline_first())
        )

    def get_by_assigned_user(self, user_id: UUID) -> list[WorkflowInstance]:
        return self._load(
            self._open()
            .where(WorkflowInstanceModel.assigned_to_user_id == user_id)
            .order_by(*_deadline_first())
        )

    def get_overdue_by_deadline(self, now: datetime) -> list[WorkflowInstance]:
        return self._load(
            self._open()
            .where(WorkflowInstanceModel.sla_due_at.is_not(None))
            .where(WorkflowInstanceModel.sla_due_at <= now)
            .order_by(WorkflowInstanceModel.sla_due_at)
        )

    def get_pending(self, page: int, page_size: int) -> list[WorkflowInstance]:
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        return self._load(
            self._open()
            .order_by(*_deadline_first())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

    def count_by_current_status(self, status: CaseStatus) -> int:
        return self._session.execute(
            select(func.count(WorkflowInstanceModel.id))
            .where(WorkflowInstanceModel.is_completed.is_(False))
            .where(WorkflowInstanceModel.current_status == status.value)
        ).scalar_one()

    def count_by_assigned_role(self, role: str) -> int:
        return self._session.execute(
            select(func.count(WorkflowInstanceModel.id))
            .where(WorkflowInstanceModel.is_completed.is_(False))
            .where(WorkflowInstanceModel.assigned_role == role)
        ).scalar_one()

    def add(self, instance: WorkflowInstance) -> None:
        # Savepoint so a duplicate-case race does not roll back the caller's
        # other work in the transaction.
        savepoint = self._session.begin_nested()
        try:
            self._session.add(WorkflowInstanceModel.from_dto(instance))
            self._session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            if self.get_by_case_id(instance.case_id) is not None:
                raise DuplicateInstanceError(str(instance.case_id)) from exc
            raise WorkflowStoreError(
                "WorkflowInstance", str(instance.id), str(exc),
            ) from exc
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise WorkflowStoreError(
                "WorkflowInstance", str(instance.id), str(exc),
            ) from exc

    def update(self, instance: WorkflowInstance) -> None:
        """
        Persist ``instance`` if nobody else has written it since it was read.

        Postconditions: on success ``instance.version`` is incremented to
            match the stored row.

        Raises:
            OptimisticLockError: stored version differs from instance.version.
            WorkflowStoreError: the row does not exist or the flush failed.
        """
        try:
            row = self._session.execute(
                select(WorkflowInstanceModel)
                .where(WorkflowInstanceModel.id == instance.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise WorkflowStoreError(
                "WorkflowInstance", str(instance.id), str(exc),
            ) from exc

        if row is None:
            raise WorkflowStoreError("WorkflowInstance", str(instance.id), "not found")
        if row.version != instance.version:
            logger.warning(
                "optimistic_lock_conflict",
                extra={
                    "instance_id": str(instance.id),
                    "expected_version": instance.version,
                    "stored_version": row.version,
                },
            )
            raise OptimisticLockError("WorkflowInstance", str(instance.id))

        stored_ids = {entry.id for entry in row.history}
        sequence = len(row.history)
        for entry in instance.transition_history:
            if entry.id in stored_ids:
                continue
            row.history.append(WorkflowTransitionLogModel.from_dto(entry, sequence))
            sequence += 1

        row.apply_dto(instance)
        row.version = instance.version + 1
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("WorkflowInstance", str(instance.id)) from exc
        except SQLAlchemyError as exc:
            raise WorkflowStoreError(
                "WorkflowInstance", str(instance.id), str(exc),
            ) from exc
        instance.version = row.version
