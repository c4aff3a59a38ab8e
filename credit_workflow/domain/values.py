"""
Workflow value types (``credit_workflow.domain.values``).

Responsibility
--------------
Case-lifecycle statuses, case types, workflow actions and role names.
Statuses double as the state set of every workflow definition; stage and
transition tables are keyed by these values and compared by equality.

Architecture position
---------------------
**Domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from enum import Enum


class CaseType(str, Enum):
    """Loan application type a workflow definition is scoped to."""

    RETAIL = "retail"
    CORPORATE = "corporate"


class CaseStatus(str, Enum):
    """Case-lifecycle status.  Each workflow stage binds exactly one value."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    DATA_GATHERING = "data_gathering"
    BRANCH_REVIEW = "branch_review"
    BRANCH_APPROVED = "branch_approved"
    BRANCH_RETURNED = "branch_returned"
    BRANCH_REJECTED = "branch_rejected"
    CREDIT_ANALYSIS = "credit_analysis"
    HO_REVIEW = "ho_review"
    COMMITTEE_CIRCULATION = "committee_circulation"
    COMMITTEE_APPROVED = "committee_approved"
    COMMITTEE_REJECTED = "committee_rejected"
    FINAL_APPROVAL = "final_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    OFFER_GENERATED = "offer_generated"
    OFFER_ACCEPTED = "offer_accepted"
    DISBURSED = "disbursed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class WorkflowAction(str, Enum):
    """Named action that drives a transition or annotates the audit trail."""

    CREATE = "create"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    ESCALATE = "escalate"
    COMPLETE = "complete"
    CANCEL = "cancel"
    REOPEN = "reopen"
    MOVE_TO_NEXT_STAGE = "move_to_next_stage"
    REQUEST_INFO = "request_info"
    PROVIDE_INFO = "provide_info"
    OVERRIDE = "override"


class Roles:
    """System role names as carried on stages, transitions and callers."""

    SYSTEM_ADMIN = "SystemAdmin"
    LOAN_OFFICER = "LoanOfficer"
    CREDIT_OFFICER = "CreditOfficer"
    RISK_MANAGER = "RiskManager"
    BRANCH_APPROVER = "BranchApprover"
    HO_REVIEWER = "HOReviewer"
    COMMITTEE_MEMBER = "CommitteeMember"
    FINAL_APPROVER = "FinalApprover"
    OPERATIONS = "Operations"
    AUDITOR = "Auditor"
    CUSTOMER = "Customer"
    SYSTEM = "System"

    ALL: tuple[str, ...] = (
        SYSTEM_ADMIN,
        LOAN_OFFICER,
        CREDIT_OFFICER,
        RISK_MANAGER,
        BRANCH_APPROVER,
        HO_REVIEWER,
        COMMITTEE_MEMBER,
        FINAL_APPROVER,
        OPERATIONS,
        AUDITOR,
        CUSTOMER,
        SYSTEM,
    )


# Authorized for every transition regardless of its required role.
SUPERUSER_ROLE = Roles.SYSTEM_ADMIN


_ACTION_DISPLAY_NAMES: dict[WorkflowAction, str] = {
    WorkflowAction.SUBMIT: "Submit",
    WorkflowAction.APPROVE: "Approve",
    WorkflowAction.REJECT: "Reject",
    WorkflowAction.RETURN: "Return for Correction",
    WorkflowAction.ESCALATE: "Escalate",
    WorkflowAction.MOVE_TO_NEXT_STAGE: "Move to Next Stage",
    WorkflowAction.REQUEST_INFO: "Request Information",
    WorkflowAction.PROVIDE_INFO: "Provide Information",
    WorkflowAction.OVERRIDE: "Override Decision",
}


def action_display_name(action: WorkflowAction) -> str:
    """Human label for an action, e.g. ``RETURN`` -> "Return for Correction"."""
    label = _ACTION_DISPLAY_NAMES.get(action)
    if label is not None:
        return label
    return action.value.replace("_", " ").title()
