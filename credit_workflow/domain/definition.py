"""
Workflow definition types (``credit_workflow.domain.definition``).

Responsibility
--------------
The data-driven state machine template for one case type: an ordered set of
stages (one per ``CaseStatus``) and a set of transitions between them, each
gated by a required role and an optional mandatory-comment policy.  The
definition is interpreted at evaluation time by ``WorkflowService``.

Architecture position
---------------------
**Domain layer** -- pure, I/O-free.  May import from ``domain/values`` and
``domain/results`` only.

Invariants enforced
-------------------
* Stages are unique by ``status`` within a definition.
* Transitions reference only statuses that have a stage (referential
  integrity checked at ``add_transition`` time).
* The full ``(from_status, to_status, action)`` triple is the transition
  key; ``(from_status, action)`` alone is NOT guaranteed unique.
* Append-only: stages and transitions are never removed or edited.  To
  change a definition cases already reference, create ``next_version()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable
from uuid import UUID, uuid4

from credit_workflow.domain.results import WorkflowErrorCode, WorkflowResult
from credit_workflow.domain.values import (
    SUPERUSER_ROLE,
    CaseStatus,
    CaseType,
    WorkflowAction,
)


@dataclass(frozen=True)
class Stage:
    """A named position in a definition bound to one case-lifecycle status.

    Contract: frozen.  ``sla_hours == 0`` means the stage has no deadline.
    ``sort_order`` is for display only and carries no semantics.
    ``is_terminal`` is true only for stages expecting no further transition.
    """

    status: CaseStatus
    display_name: str
    assigned_role: str
    sla_hours: int = 0
    sort_order: int = 0
    description: str = ""
    requires_comment: bool = False
    is_terminal: bool = False

    @property
    def sla(self) -> timedelta | None:
        if self.sla_hours <= 0:
            return None
        return timedelta(hours=self.sla_hours)


@dataclass(frozen=True)
class Transition:
    """A permitted movement between two stages via a named action.

    Contract: frozen.  ``condition_expression`` is stored for display and
    downstream tooling; the engine does not evaluate it.
    """

    from_status: CaseStatus
    to_status: CaseStatus
    action: WorkflowAction
    required_role: str
    requires_comment: bool = False
    condition_expression: str | None = None

    @property
    def key(self) -> tuple[CaseStatus, CaseStatus, WorkflowAction]:
        return (self.from_status, self.to_status, self.action)


class WorkflowDefinition:
    """A versioned stage/transition template scoped to one case type.

    Contract:
        Built once with ``create()`` + ``add_stage()`` / ``add_transition()``,
        then only appended to.  Lookup methods are pure.

    Guarantees:
        - ``get_stage`` and ``get_transition`` are exact-value lookups.
        - ``stages`` is ordered by ``sort_order`` (insertion order on ties).

    Non-goals:
        - Does not evaluate ``condition_expression``.
        - Does not decide which definition is active; the store does.
    """

    def __init__(
        self,
        *,
        name: str,
        case_type: CaseType,
        description: str = "",
        version: int = 1,
        is_active: bool = True,
        id: UUID | None = None,
        stages: Iterable[Stage] = (),
        transitions: Iterable[Transition] = (),
    ) -> None:
        self.id = id or uuid4()
        self.name = name
        self.description = description
        self.case_type = case_type
        self.version = version
        self.is_active = is_active
        self._stages: dict[CaseStatus, Stage] = {s.status: s for s in stages}
        self._transitions: list[Transition] = list(transitions)

    def __repr__(self) -> str:
        return (
            f"<WorkflowDefinition {self.name!r} {self.case_type.value} "
            f"v{self.version} active={self.is_active}>"
        )

    @classmethod
    def create(
        cls,
        name: str,
        description: str,
        case_type: CaseType,
    ) -> WorkflowResult[WorkflowDefinition]:
        """Start a new, active, version-1 definition."""
        if not name or not name.strip():
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "Workflow name is required",
            )
        return WorkflowResult.ok(
            cls(name=name, description=description, case_type=case_type)
        )

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_stage(
        self,
        status: CaseStatus,
        display_name: str,
        assigned_role: str,
        sla_hours: int = 0,
        sort_order: int = 0,
        description: str = "",
        requires_comment: bool = False,
        is_terminal: bool = False,
    ) -> WorkflowResult[Stage]:
        if status in self._stages:
            return WorkflowResult.fail(
                WorkflowErrorCode.ALREADY_EXISTS,
                f"Stage for status {status.value} already exists",
                status=status.value,
            )
        if not display_name or not display_name.strip():
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "Display name is required",
                status=status.value,
            )
        if not assigned_role or not assigned_role.strip():
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "Assigned role is required",
                status=status.value,
            )
        if sla_hours < 0:
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "SLA hours cannot be negative",
                status=status.value,
                sla_hours=sla_hours,
            )

        stage = Stage(
            status=status,
            display_name=display_name,
            assigned_role=assigned_role,
            sla_hours=sla_hours,
            sort_order=sort_order,
            description=description,
            requires_comment=requires_comment,
            is_terminal=is_terminal,
        )
        self._stages[status] = stage
        return WorkflowResult.ok(stage)

    def add_transition(
        self,
        from_status: CaseStatus,
        to_status: CaseStatus,
        action: WorkflowAction,
        required_role: str,
        requires_comment: bool = False,
        condition_expression: str | None = None,
    ) -> WorkflowResult[Transition]:
        if from_status not in self._stages:
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                f"From stage {from_status.value} not found",
                from_status=from_status.value,
            )
        if to_status not in self._stages:
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                f"To stage {to_status.value} not found",
                to_status=to_status.value,
            )
        if not required_role or not required_role.strip():
            return WorkflowResult.fail(
                WorkflowErrorCode.VALIDATION_FAILED,
                "Required role is required",
            )
        if self.get_transition(from_status, to_status, action) is not None:
            return WorkflowResult.fail(
                WorkflowErrorCode.ALREADY_EXISTS,
                f"Transition from {from_status.value} to {to_status.value} "
                f"via {action.value} already exists",
                from_status=from_status.value,
                to_status=to_status.value,
                action=action.value,
            )

        transition = Transition(
            from_status=from_status,
            to_status=to_status,
            action=action,
            required_role=required_role,
            requires_comment=requires_comment,
            condition_expression=condition_expression,
        )
        self._transitions.append(transition)
        return WorkflowResult.ok(transition)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(sorted(self._stages.values(), key=lambda s: s.sort_order))

    @property
    def transitions(self) -> tuple[Transition, ...]:
        return tuple(self._transitions)

    def get_stage(self, status: CaseStatus) -> Stage | None:
        return self._stages.get(status)

    def get_transition(
        self,
        from_status: CaseStatus,
        to_status: CaseStatus,
        action: WorkflowAction,
    ) -> Transition | None:
        """Exact triple lookup; confirms a *requested* transition is legal."""
        key = (from_status, to_status, action)
        for transition in self._transitions:
            if transition.key == key:
                return transition
        return None

    def get_available_transitions(self, from_status: CaseStatus) -> list[Transition]:
        """Every transition leaving ``from_status``, in definition order."""
        return [t for t in self._transitions if t.from_status == from_status]

    def can_transition(
        self,
        from_status: CaseStatus,
        to_status: CaseStatus,
        action: WorkflowAction,
        role: str,
        superuser_role: str = SUPERUSER_ROLE,
    ) -> bool:
        transition = self.get_transition(from_status, to_status, action)
        if transition is None:
            return False
        return role == transition.required_role or role == superuser_role

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        self.is_active = True

    def deactivate(self) -> None:
        self.is_active = False

    def append_only_violation(self, updated: WorkflowDefinition) -> tuple[str, str] | None:
        """
        Check that ``updated`` only adds to this stored definition.

        Returns ``(element, reason)`` for the first stored stage or transition
        that ``updated`` drops or edits, or None when it only appends.
        """
        for stage in self._stages.values():
            candidate = updated.get_stage(stage.status)
            if candidate is None:
                return stage.status.value, "stored stage removed"
            if candidate != stage:
                return stage.status.value, "stored stage edited"
        updated_transitions = {t.key: t for t in updated.transitions}
        for transition in self._transitions:
            label = "/".join(part.value for part in transition.key)
            candidate = updated_transitions.get(transition.key)
            if candidate is None:
                return label, "stored transition removed"
            if candidate != transition:
                return label, "stored transition edited"
        return None

    def next_version(self) -> WorkflowDefinition:
        """Copy this definition into a new, active version with a fresh id.

        Cases keep referencing the version they were created against; edits
        go to the returned copy.
        """
        return WorkflowDefinition(
            name=self.name,
            description=self.description,
            case_type=self.case_type,
            version=self.version + 1,
            is_active=True,
            stages=self._stages.values(),
            transitions=self._transitions,
        )
