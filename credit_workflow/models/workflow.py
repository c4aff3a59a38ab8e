"""
Module: credit_workflow.models.workflow
Responsibility: ORM persistence for workflow definitions (stages and
    transitions), workflow instances, and the transition log.

Architecture position: Models.  May import from db/base.py, exceptions, and
    (lazily, inside to_dto/from_dto) domain types.

Invariants enforced:
    - One stage per (definition, status); one transition per
      (definition, from_status, to_status, action).
    - One instance per case (UNIQUE case_id).
    - At most one active definition per case type (partial unique index).
    - Instance rows carry an optimistic-lock version (version_id_col); a
      stale UPDATE raises StaleDataError, surfaced as OptimisticLockError by
      the repository.
    - Transition log rows are append-only: UPDATE/DELETE raise
      ImmutabilityViolationError at ORM level.

Failure modes:
    - IntegrityError on duplicate stage/transition/case/active definition.
    - ImmutabilityViolationError on log UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Interval,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_workflow.db.base import Base, UUIDString
from credit_workflow.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from credit_workflow.domain.definition import (
        Stage,
        Transition,
        WorkflowDefinition,
    )
    from credit_workflow.domain.instance import (
        TransitionLogEntry,
        WorkflowInstance,
    )


# =============================================================================
# Definitions
# =============================================================================


class WorkflowDefinitionModel(Base):
    """Persistent workflow definition header.

    Contract:
        Append-only once cases reference it.  Only ``is_active`` flips;
        stages and transitions are added, never edited.
    """

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        Index(
            "ix_workflow_definitions_one_active",
            "case_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_workflow_definitions_type_version", "case_type", "version"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    case_type: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    stages: Mapped[list[WorkflowStageModel]] = relationship(
        "WorkflowStageModel",
        back_populates="definition",
        cascade="all, delete-orphan",
        order_by="WorkflowStageModel.sort_order",
        lazy="selectin",
    )
    transitions: Mapped[list[WorkflowTransitionModel]] = relationship(
        "WorkflowTransitionModel",
        back_populates="definition",
        cascade="all, delete-orphan",
        order_by="WorkflowTransitionModel.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowDefinition {self.id} {self.case_type} "
            f"v{self.version} active={self.is_active}>"
        )

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to a domain definition."""
        from credit_workflow.domain.definition import WorkflowDefinition
        from credit_workflow.domain.values import CaseType

        return WorkflowDefinition(
            id=self.id,
            name=self.name,
            description=self.description,
            case_type=CaseType(self.case_type),
            version=self.version,
            is_active=self.is_active,
            stages=[s.to_dto() for s in self.stages],
            transitions=[t.to_dto() for t in self.transitions],
        )

    @classmethod
    def from_dto(cls, dto: WorkflowDefinition) -> WorkflowDefinitionModel:
        """Create ORM model (with child rows) from a domain definition."""
        model = cls(
            id=dto.id,
            name=dto.name,
            description=dto.description,
            case_type=dto.case_type.value,
            version=dto.version,
            is_active=dto.is_active,
        )
        model.stages = [WorkflowStageModel.from_dto(s) for s in dto.stages]
        model.transitions = [
            WorkflowTransitionModel.from_dto(t, position)
            for position, t in enumerate(dto.transitions)
        ]
        return model


class WorkflowStageModel(Base):
    """Persistent stage row, unique per (definition, status)."""

    __tablename__ = "workflow_stages"

    __table_args__ = (
        UniqueConstraint(
            "definition_id", "status",
            name="uq_workflow_stages_definition_status",
        ),
    )

    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    assigned_role: Mapped[str] = mapped_column(String(100), nullable=False)
    sla_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requires_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    definition: Mapped[WorkflowDefinitionModel] = relationship(
        "WorkflowDefinitionModel", back_populates="stages",
    )

    def to_dto(self) -> Stage:
        from credit_workflow.domain.definition import Stage
        from credit_workflow.domain.values import CaseStatus

        return Stage(
            status=CaseStatus(self.status),
            display_name=self.display_name,
            assigned_role=self.assigned_role,
            sla_hours=self.sla_hours,
            sort_order=self.sort_order,
            description=self.description,
            requires_comment=self.requires_comment,
            is_terminal=self.is_terminal,
        )

    @classmethod
    def from_dto(cls, dto: Stage) -> WorkflowStageModel:
        return cls(
            status=dto.status.value,
            display_name=dto.display_name,
            description=dto.description,
            assigned_role=dto.assigned_role,
            sla_hours=dto.sla_hours,
            sort_order=dto.sort_order,
            requires_comment=dto.requires_comment,
            is_terminal=dto.is_terminal,
        )


class WorkflowTransitionModel(Base):
    """Persistent transition row, unique per (definition, triple).

    ``position`` preserves definition order for available-action listings.
    """

    __tablename__ = "workflow_transitions"

    __table_args__ = (
        UniqueConstraint(
            "definition_id", "from_status", "to_status", "action",
            name="uq_workflow_transitions_triple",
        ),
        Index("ix_workflow_transitions_from", "definition_id", "from_status"),
    )

    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    from_status: Mapped[str] = mapped_column(String(50), nullable=False)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    required_role: Mapped[str] = mapped_column(String(100), nullable=False)
    requires_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    condition_expression: Mapped[str | None] = mapped_column(Text, nullable=True)

    definition: Mapped[WorkflowDefinitionModel] = relationship(
        "WorkflowDefinitionModel", back_populates="transitions",
    )

    def to_dto(self) -> Transition:
        from credit_workflow.domain.definition import Transition
        from credit_workflow.domain.values import CaseStatus, WorkflowAction

        return Transition(
            from_status=CaseStatus(self.from_status),
            to_status=CaseStatus(self.to_status),
            action=WorkflowAction(self.action),
            required_role=self.required_role,
            requires_comment=self.requires_comment,
            condition_expression=self.condition_expression,
        )

    @classmethod
    def from_dto(cls, dto: Transition, position: int) -> WorkflowTransitionModel:
        return cls(
            position=position,
            from_status=dto.from_status.value,
            to_status=dto.to_status.value,
            action=dto.action.value,
            required_role=dto.required_role,
            requires_comment=dto.requires_comment,
            condition_expression=dto.condition_expression,
        )


# =============================================================================
# Instances
# =============================================================================


class WorkflowInstanceModel(Base):
    """Persistent workflow instance for one case.

    Contract:
        ``version`` is managed by the repository (version_id_generator=False):
        each successful update writes ``version + 1`` guarded by
        ``WHERE version = <loaded version>``.
    """

    __tablename__ = "workflow_instances"

    __table_args__ = (
        UniqueConstraint("case_id", name="uq_workflow_instances_case"),
        Index("ix_workflow_instances_status", "current_status", "is_completed"),
        Index("ix_workflow_instances_role", "assigned_role", "is_completed"),
        Index("ix_workflow_instances_user", "assigned_to_user_id", "is_completed"),
        Index("ix_workflow_instances_sla", "is_completed", "sla_due_at"),
    )

    case_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    current_status: Mapped[str] = mapped_column(String(50), nullable=False)
    current_stage_display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    assigned_role: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_to_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    entered_current_stage_at: Mapped[datetime] = mapped_column(nullable=False)
    sla_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    final_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    history: Mapped[list[WorkflowTransitionLogModel]] = relationship(
        "WorkflowTransitionLogModel",
        back_populates="instance",
        order_by="WorkflowTransitionLogModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowInstance {self.id} case={self.case_id} "
            f"status={self.current_status} v{self.version}>"
        )

    def apply_dto(self, dto: WorkflowInstance) -> None:
        """Copy the mutable instance state from a domain instance."""
        self.current_status = dto.current_status.value
        self.current_stage_display_name = dto.current_stage_display_name
        self.assigned_role = dto.assigned_role
        self.assigned_to_user_id = dto.assigned_to_user_id
        self.assigned_at = dto.assigned_at
        self.entered_current_stage_at = dto.entered_current_stage_at
        self.sla_due_at = dto.sla_due_at
        self.is_sla_breached = dto.is_sla_breached
        self.escalation_level = dto.escalation_level
        self.is_completed = dto.is_completed
        self.completed_at = dto.completed_at
        self.final_status = dto.final_status.value if dto.final_status else None

    def to_dto(self) -> WorkflowInstance:
        """Convert ORM model to a domain instance with full history."""
        from credit_workflow.domain.instance import WorkflowInstance
        from credit_workflow.domain.values import CaseStatus

        return WorkflowInstance(
            id=self.id,
            case_id=self.case_id,
            definition_id=self.definition_id,
            current_status=CaseStatus(self.current_status),
            current_stage_display_name=self.current_stage_display_name,
            assigned_role=self.assigned_role,
            assigned_to_user_id=self.assigned_to_user_id,
            assigned_at=self.assigned_at,
            entered_current_stage_at=self.entered_current_stage_at,
            sla_due_at=self.sla_due_at,
            is_sla_breached=self.is_sla_breached,
            escalation_level=self.escalation_level,
            is_completed=self.is_completed,
            completed_at=self.completed_at,
            final_status=CaseStatus(self.final_status) if self.final_status else None,
            transition_history=[h.to_dto() for h in self.history],
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowInstance) -> WorkflowInstanceModel:
        model = cls(
            id=dto.id,
            case_id=dto.case_id,
            definition_id=dto.definition_id,
            version=dto.version,
        )
        model.apply_dto(dto)
        model.history = [
            WorkflowTransitionLogModel.from_dto(entry, sequence)
            for sequence, entry in enumerate(dto.transition_history)
        ]
        return model


class WorkflowTransitionLogModel(Base):
    """Persistent transition log entry. Append-only.

    Contract:
        Rows are immutable once created -- no UPDATE, no DELETE.
        ``sequence`` orders entries within one instance.
    """

    __tablename__ = "workflow_transition_logs"

    __table_args__ = (
        UniqueConstraint(
            "instance_id", "sequence",
            name="uq_workflow_transition_logs_sequence",
        ),
    )

    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_instances.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str] = mapped_column(String(50), nullable=False)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_in_previous_stage: Mapped[timedelta | None] = mapped_column(
        Interval(), nullable=True,
    )

    instance: Mapped[WorkflowInstanceModel] = relationship(
        "WorkflowInstanceModel", back_populates="history",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowTransitionLog {self.id} "
            f"{self.from_status}->{self.to_status} via {self.action}>"
        )

    def to_dto(self) -> TransitionLogEntry:
        from credit_workflow.domain.instance import TransitionLogEntry
        from credit_workflow.domain.values import CaseStatus, WorkflowAction

        return TransitionLogEntry(
            id=self.id,
            instance_id=self.instance_id,
            from_status=CaseStatus(self.from_status),
            to_status=CaseStatus(self.to_status),
            action=WorkflowAction(self.action),
            performed_by_user_id=self.performed_by_user_id,
            performed_at=self.performed_at,
            comment=self.comment,
            duration_in_previous_stage=self.duration_in_previous_stage,
        )

    @classmethod
    def from_dto(cls, dto: TransitionLogEntry, sequence: int) -> WorkflowTransitionLogModel:
        return cls(
            id=dto.id,
            instance_id=dto.instance_id,
            sequence=sequence,
            from_status=dto.from_status.value,
            to_status=dto.to_status.value,
            action=dto.action.value,
            performed_by_user_id=dto.performed_by_user_id,
            performed_at=dto.performed_at,
            comment=dto.comment,
            duration_in_previous_stage=dto.duration_in_previous_stage,
        )


# =============================================================================
# ORM-Level Immutability for the Transition Log (Append-Only)
# =============================================================================


@event.listens_for(WorkflowTransitionLogModel, "before_update")
def prevent_log_update(mapper, connection, target):
    """Prevent updates to transition log records."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowTransitionLog",
        entity_id=str(target.id),
        reason="Transition log entries are immutable -- cannot modify",
    )


@event.listens_for(WorkflowTransitionLogModel, "before_delete")
def prevent_log_delete(mapper, connection, target):
    """Prevent deletion of transition log records."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowTransitionLog",
        entity_id=str(target.id),
        reason="Transition log entries are immutable -- cannot delete",
    )
