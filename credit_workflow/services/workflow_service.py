"""
credit_workflow.services.workflow_service -- Workflow orchestration.

Responsibility:
    The only component that mutates a workflow instance through validated
    entry points.  Owns authorization (required role, superuser bypass),
    the mandatory-comment policy, and the SLA sweep.  Definition and
    instance stores are injected at construction time.

Architecture position:
    Services layer.  May import from domain/, exceptions, logging_config.
    Talks to storage only through the repository protocols.

Invariants enforced:
    - No partial observable mutation: every operation validates first and
      performs exactly one terminal ``update``/``add`` on the instance store.
    - Business rejections are returned as ``WorkflowResult`` failures and
      logged as ``workflow_transition_rejected``; they are never raised.
    - A rejection reason names the specific cause (required role, attempted
      transition, missing comment).

Failure modes:
    - OptimisticLockError (raised by the store) when a concurrent writer won
      the race on the same instance; callers re-run the whole call
      (see ``retry_service.run_with_conflict_retry``).
    - WorkflowStoreError when the store cannot load or persist.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from credit_workflow.domain.clock import Clock, SystemClock
from credit_workflow.domain.definition import WorkflowDefinition
from credit_workflow.domain.instance import WorkflowInstance
from credit_workflow.domain.repositories import (
    WorkflowDefinitionRepository,
    WorkflowInstanceRepository,
)
from credit_workflow.domain.results import WorkflowErrorCode, WorkflowResult
from credit_workflow.domain.values import (
    SUPERUSER_ROLE,
    CaseStatus,
    CaseType,
    WorkflowAction,
    action_display_name,
)
from credit_workflow.exceptions import DuplicateInstanceError, OptimisticLockError
from credit_workflow.logging_config import LogContext, get_logger

logger = get_logger("services.workflow")


@dataclass(frozen=True)
class AvailableAction:
    """One action the caller's role may take from the current stage."""

    action: WorkflowAction
    to_status: CaseStatus
    requires_comment: bool
    display_name: str


class WorkflowService:
    """
    Orchestrates workflow initialization, transitions, queue handling and
    SLA enforcement.

    Contract:
        Every public method except ``check_and_mark_sla_breaches`` returns a
        ``WorkflowResult``.  Store exceptions propagate unchanged.

    Guarantees:
        - ``transition_to`` succeeds iff the exact (from, to, action) triple
          exists, the role matches (or is the superuser role), and a comment
          is present whenever the transition requires one.
        - ``check_and_mark_sla_breaches`` is idempotent and safe to overlap
          with itself.

    Non-goals:
        - Does not resolve the current user or role; callers pass both.
        - Does not evaluate ``condition_expression`` on transitions.
        - Does not schedule itself; the sweep is a plain call.
    """

    def __init__(
        self,
        definition_repository: WorkflowDefinitionRepository,
        instance_repository: WorkflowInstanceRepository,
        clock: Clock | None = None,
        superuser_role: str = SUPERUSER_ROLE,
    ):
        self._definitions = definition_repository
        self._instances = instance_repository
        self._clock = clock or SystemClock()
        self._superuser_role = superuser_role

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reject(self, operation: str, result: WorkflowResult, **context) -> WorkflowResult:
        logger.info(
            "workflow_transition_rejected",
            extra={
                "operation": operation,
                "error": result.error.value if result.error else None,
                "reason": result.reason,
                **context,
            },
        )
        return result

    def _load_instance(self, instance_id: UUID) -> WorkflowResult[WorkflowInstance]:
        instance = self._instances.get_by_id(instance_id)
        if instance is None:
            return WorkflowResult.fail(
                WorkflowErrorCode.NOT_FOUND,
                f"Workflow instance {instance_id} not found",
                instance_id=str(instance_id),
            )
        return WorkflowResult.ok(instance)

    def _load_definition(self, instance: WorkflowInstance) -> WorkflowResult[WorkflowDefinition]:
        definition = self._definitions.get_by_id(instance.definition_id)
        if definition is None:
            return WorkflowResult.fail(
                WorkflowErrorCode.NOT_FOUND,
                f"Workflow definition {instance.definition_id} not found",
                definition_id=str(instance.definition_id),
            )
        return WorkflowResult.ok(definition)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_workflow(
        self,
        case_id: UUID,
        case_type: CaseType,
        initial_status: CaseStatus,
        initiated_by_user_id: UUID,
    ) -> WorkflowResult[WorkflowInstance]:
        """Start the workflow for ``case_id`` at ``initial_status``.

        Not idempotent: a second call for the same case fails ALREADY_EXISTS.
        """
        with LogContext.bind(case_id=case_id, actor_id=initiated_by_user_id):
            if self._instances.get_by_case_id(case_id) is not None:
                return self._reject(
                    "initialize",
                    WorkflowResult.fail(
                        WorkflowErrorCode.ALREADY_EXISTS,
                        f"Workflow already exists for case {case_id}",
                        case_id=str(case_id),
                    ),
                )

            definition = self._definitions.get_active_by_case_type(case_type)
            if definition is None:
                return self._reject(
                    "initialize",
                    WorkflowResult.fail(
                        WorkflowErrorCode.NOT_FOUND,
                        f"No active workflow definition for {case_type.value} cases",
                        case_type=case_type.value,
                    ),
                )

            stage = definition.get_stage(initial_status)
            if stage is None:
                return self._reject(
                    "initialize",
                    WorkflowResult.fail(
                        WorkflowErrorCode.VALIDATION_FAILED,
                        f"Stage {initial_status.value} not found in workflow "
                        f"definition {definition.name!r}",
                        initial_status=initial_status.value,
                        definition_id=str(definition.id),
                    ),
                )

            created = WorkflowInstance.create(
                case_id=case_id,
                definition_id=definition.id,
                initial_status=initial_status,
                stage_display_name=stage.display_name,
                assigned_role=stage.assigned_role,
                sla_hours=stage.sla_hours,
                initiated_by_user_id=initiated_by_user_id,
                now=self._clock.now(),
            )
            if created.is_failure:
                return self._reject("initialize", created)

            instance = created.value
            try:
                self._instances.add(instance)
            except DuplicateInstanceError:
                # lost a race with a concurrent initialization of the same case
                return self._reject(
                    "initialize",
                    WorkflowResult.fail(
                        WorkflowErrorCode.ALREADY_EXISTS,
                        f"Workflow already exists for case {case_id}",
                        case_id=str(case_id),
                    ),
                )

            logger.info(
                "workflow_initialized",
                extra={
                    "instance_id": str(instance.id),
                    "definition_id": str(definition.id),
                    "definition_version": definition.version,
                    "status": initial_status.value,
                    "assigned_role": instance.assigned_role,
                    "sla_due_at": instance.sla_due_at,
                },
            )
            return WorkflowResult.ok(instance)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition_to(
        self,
        instance_id: UUID,
        to_status: CaseStatus,
        action: WorkflowAction,
        performed_by_user_id: UUID,
        user_role: str,
        comment: str | None = None,
    ) -> WorkflowResult[WorkflowInstance]:
        """Validate and execute one transition, then persist the instance."""
        with LogContext.bind(instance_id=instance_id, actor_id=performed_by_user_id):
            loaded = self._load_instance(instance_id)
            if loaded.is_failure:
                return self._reject("transition", loaded)
            instance = loaded.value

            attempt = {
                "from_status": instance.current_status.value,
                "to_status": to_status.value,
                "action": action.value,
                "user_role": user_role,
            }

            if instance.is_completed:
                return self._reject(
                    "transition",
                    WorkflowResult.fail(
                        WorkflowErrorCode.ALREADY_COMPLETED,
                        f"Workflow is already completed in "
                        f"{instance.current_status.value}",
                        **attempt,
                    ),
                )

            loaded_definition = self._load_definition(instance)
            if loaded_definition.is_failure:
                return self._reject("transition", loaded_definition)
            definition = loaded_definition.value

            transition = definition.get_transition(
                instance.current_status, to_status, action,
            )
            if transition is None:
                return self._reject(
                    "transition",
                    WorkflowResult.fail(
                        WorkflowErrorCode.INVALID_TRANSITION,
                        f"Transition from {instance.current_status.value} to "
                        f"{to_status.value} via {action.value} is not allowed",
                        **attempt,
                    ),
                )

            if not definition.can_transition(
                instance.current_status,
                to_status,
                action,
                user_role,
                superuser_role=self._superuser_role,
            ):
                return self._reject(
                    "transition",
                    WorkflowResult.fail(
                        WorkflowErrorCode.UNAUTHORIZED,
                        f"Role {user_role} is not authorized for this transition. "
                        f"Required: {transition.required_role}",
                        required_role=transition.required_role,
                        **attempt,
                    ),
                )

            if transition.requires_comment and (comment is None or not comment.strip()):
                return self._reject(
                    "transition",
                    WorkflowResult.fail(
                        WorkflowErrorCode.VALIDATION_FAILED,
                        f"Comment is required to {action_display_name(action).lower()} "
                        f"from {instance.current_status.value}",
                        **attempt,
                    ),
                )

            target = definition.get_stage(to_status)
            if target is None:
                return self._reject(
                    "transition",
                    WorkflowResult.fail(
                        WorkflowErrorCode.NOT_FOUND,
                        f"Target stage {to_status.value} not found",
                        **attempt,
                    ),
                )

            executed = instance.transition(
                to_status=to_status,
                action=action,
                new_stage_display_name=target.display_name,
                new_assigned_role=target.assigned_role,
                new_sla_hours=target.sla_hours,
                performed_by_user_id=performed_by_user_id,
                now=self._clock.now(),
                comment=comment,
                is_terminal=target.is_terminal,
            )
            if executed.is_failure:
                return self._reject("transition", executed.cast(), **attempt)

            self._instances.update(instance)

            logger.info(
                "workflow_transitioned",
                extra={
                    **attempt,
                    "duration_in_previous_stage": executed.value.duration_in_previous_stage,
                    "assigned_role": instance.assigned_role,
                    "is_completed": instance.is_completed,
                    "version": instance.version,
                },
            )
            return WorkflowResult.ok(instance)

    def get_available_actions(
        self,
        instance_id: UUID,
        user_role: str,
    ) -> WorkflowResult[list[AvailableAction]]:
        """Actions ``user_role`` may take from the instance's current stage.

        Each destination of an action is listed separately.
        """
        loaded = self._load_instance(instance_id)
        if loaded.is_failure:
            return loaded.cast()
        instance = loaded.value

        if instance.is_completed:
            return WorkflowResult.ok([])

        loaded_definition = self._load_definition(instance)
        if loaded_definition.is_failure:
            return loaded_definition.cast()

        actions = [
            AvailableAction(
                action=t.action,
                to_status=t.to_status,
                requires_comment=t.requires_comment,
                display_name=action_display_name(t.action),
            )
            for t in loaded_definition.value.get_available_transitions(
                instance.current_status
            )
            if t.required_role == user_role or user_role == self._superuser_role
        ]
        return WorkflowResult.ok(actions)

    # ------------------------------------------------------------------
    # Queue handling
    # ------------------------------------------------------------------

    def assign(
        self,
        instance_id: UUID,
        assign_to_user_id: UUID,
        assigned_by_user_id: UUID,
    ) -> WorkflowResult[WorkflowInstance]:
        with LogContext.bind(instance_id=instance_id, actor_id=assigned_by_user_id):
            loaded = self._load_instance(instance_id)
            if loaded.is_failure:
                return self._reject("assign", loaded)
            instance = loaded.value

            assigned = instance.assign_to_user(
                assign_to_user_id, assigned_by_user_id, self._clock.now(),
            )
            if assigned.is_failure:
                return self._reject("assign", assigned.cast())

            self._instances.update(instance)
            logger.info(
                "workflow_assigned",
                extra={
                    "assigned_to_user_id": str(assign_to_user_id),
                    "status": instance.current_status.value,
                },
            )
            return WorkflowResult.ok(instance)

    def unassign(
        self,
        instance_id: UUID,
        unassigned_by_user_id: UUID,
    ) -> WorkflowResult[WorkflowInstance]:
        with LogContext.bind(instance_id=instance_id, actor_id=unassigned_by_user_id):
            loaded = self._load_instance(instance_id)
            if loaded.is_failure:
                return self._reject("unassign", loaded)
            instance = loaded.value

            previous_user_id = instance.assigned_to_user_id
            unassigned = instance.unassign_from_user(
                unassigned_by_user_id, self._clock.now(),
            )
            if unassigned.is_failure:
                return self._reject("unassign", unassigned.cast())

            self._instances.update(instance)
            logger.info(
                "workflow_unassigned",
                extra={
                    "previous_user_id": str(previous_user_id),
                    "status": instance.current_status.value,
                },
            )
            return WorkflowResult.ok(instance)

    def escalate(
        self,
        instance_id: UUID,
        escalated_by_user_id: UUID,
        reason: str,
    ) -> WorkflowResult[WorkflowInstance]:
        with LogContext.bind(instance_id=instance_id, actor_id=escalated_by_user_id):
            if not reason or not reason.strip():
                return self._reject(
                    "escalate",
                    WorkflowResult.fail(
                        WorkflowErrorCode.VALIDATION_FAILED,
                        "Escalation reason is required",
                        instance_id=str(instance_id),
                    ),
                )

            loaded = self._load_instance(instance_id)
            if loaded.is_failure:
                return self._reject("escalate", loaded)
            instance = loaded.value

            escalated = instance.escalate(
                escalated_by_user_id, reason, self._clock.now(),
            )
            if escalated.is_failure:
                return self._reject("escalate", escalated.cast())

            self._instances.update(instance)
            logger.info(
                "workflow_escalated",
                extra={
                    "escalation_level": instance.escalation_level,
                    "status": instance.current_status.value,
                    "reason": reason,
                },
            )
            return WorkflowResult.ok(instance)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_instance(self, instance_id: UUID) -> WorkflowResult[WorkflowInstance]:
        return self._load_instance(instance_id)

    def get_instance_for_case(self, case_id: UUID) -> WorkflowResult[WorkflowInstance]:
        instance = self._instances.get_by_case_id(case_id)
        if instance is None:
            return WorkflowResult.fail(
                WorkflowErrorCode.NOT_FOUND,
                f"No workflow instance for case {case_id}",
                case_id=str(case_id),
            )
        return WorkflowResult.ok(instance)

    # ------------------------------------------------------------------
    # SLA sweep
    # ------------------------------------------------------------------

    def check_and_mark_sla_breaches(self) -> int:
        """
        Mark every newly overdue open instance as SLA-breached.

        The store's overdue list is only a candidate set: each instance is
        re-checked with ``is_sla_due`` against this sweep's ``now``.  An
        instance another writer changed concurrently is skipped; the next
        sweep re-evaluates it.

        Returns:
            Number of instances this call marked as breached.
        """
        now = self._clock.now()
        candidates = self._instances.get_overdue_by_deadline(now)
        marked = 0
        conflicts = 0

        for instance in candidates:
            if not instance.is_sla_due(now):
                continue
            flagged = instance.mark_sla_breached()
            if flagged.is_failure or not flagged.value:
                continue
            try:
                self._instances.update(instance)
            except OptimisticLockError:
                conflicts += 1
                logger.warning(
                    "sla_breach_conflict_skipped",
                    extra={"instance_id": str(instance.id)},
                )
                continue
            marked += 1
            logger.info(
                "sla_breach_marked",
                extra={
                    "instance_id": str(instance.id),
                    "case_id": str(instance.case_id),
                    "status": instance.current_status.value,
                    "assigned_role": instance.assigned_role,
                    "sla_due_at": instance.sla_due_at,
                },
            )

        logger.info(
            "sla_sweep_completed",
            extra={
                "candidates": len(candidates),
                "marked": marked,
                "conflicts": conflicts,
                "swept_at": now,
            },
        )
        return marked
