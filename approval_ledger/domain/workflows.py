"""
Workflow status transitions.

All functions here are pure: they take the workflow as last read (including
its ``version``) and return the workflow as it should be written. Persisting
the result is a version-guarded write done by the repository, which is where
lost races surface as ConcurrencyError.

    PENDING --approved--> APPROVED
    PENDING --rejected--> REJECTED
    PENDING --expires_at reached--> EXPIRED
    PENDING --initiator withdraws--> WITHDRAWN
    PENDING --template deprecated with cancellation--> CANCELED
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from .errors import NotWorkflowInitiatorError, TerminalStateError, WorkflowValidationError
from .rules import EvaluationResult
from .templates import WorkflowTemplate
from .voters import VoterReference

WORKFLOW_NAME_MAX_LENGTH = 512
WORKFLOW_DESCRIPTION_MAX_LENGTH = 2048
_WORKFLOW_NAME_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")


class WorkflowStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


TERMINAL_STATUSES = frozenset(
    {
        WorkflowStatus.APPROVED,
        WorkflowStatus.REJECTED,
        WorkflowStatus.WITHDRAWN,
        WorkflowStatus.EXPIRED,
        WorkflowStatus.CANCELED,
    }
)


class CantVoteReason(str, Enum):
    WORKFLOW_NOT_PENDING = "workflow_not_pending"
    WORKFLOW_EXPIRED = "workflow_expired"
    WORKFLOW_TEMPLATE_NOT_ACTIVE = "workflow_template_not_active"
    ENTITY_NOT_IN_REQUIRED_GROUP = "entity_not_in_required_group"


@dataclass(frozen=True)
class Workflow:
    id: UUID
    template_id: UUID
    name: str
    status: WorkflowStatus
    initiator: VoterReference
    expires_at: datetime
    version: int
    created_at: datetime
    updated_at: datetime
    description: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


# =============================================================================
# CREATION
# =============================================================================


class WorkflowFactory:
    @staticmethod
    def new_workflow(
        *,
        template: WorkflowTemplate,
        name: str,
        initiator: VoterReference,
        now: datetime,
        expires_in_hours: int,
        description: str | None = None,
    ) -> Workflow:
        """Create a pending workflow at version 1."""
        if not name or not name.strip():
            raise WorkflowValidationError("workflow_name_empty")
        if len(name) > WORKFLOW_NAME_MAX_LENGTH:
            raise WorkflowValidationError("workflow_name_too_long")
        if not _WORKFLOW_NAME_PATTERN.fullmatch(name):
            raise WorkflowValidationError("workflow_name_invalid_characters")
        if description is not None and len(description) > WORKFLOW_DESCRIPTION_MAX_LENGTH:
            raise WorkflowValidationError("workflow_description_too_long")
        if expires_in_hours < 1:
            raise WorkflowValidationError("workflow_expires_at_in_the_past")

        return Workflow(
            id=uuid4(),
            template_id=template.id,
            name=name,
            status=WorkflowStatus.PENDING,
            initiator=initiator,
            expires_at=now + timedelta(hours=expires_in_hours),
            version=1,
            created_at=now,
            updated_at=now,
            description=description,
        )


# =============================================================================
# TRANSITIONS
# =============================================================================


def transition(workflow: Workflow, result: EvaluationResult, now: datetime) -> Workflow:
    """
    Apply an evaluation result to a pending workflow.

    Expiry takes precedence over the evaluation: votes that arrive after
    ``expires_at`` cannot approve or reject. A PENDING result returns the
    workflow unchanged, which callers use to skip the write.

    Raises:
        TerminalStateError: if the workflow is already closed
    """
    _ensure_open(workflow)

    if workflow.is_expired(now):
        return _move(workflow, WorkflowStatus.EXPIRED, now)
    if result is EvaluationResult.APPROVED:
        return _move(workflow, WorkflowStatus.APPROVED, now)
    if result is EvaluationResult.REJECTED:
        return _move(workflow, WorkflowStatus.REJECTED, now)
    return workflow


def expire(workflow: Workflow, now: datetime) -> Workflow:
    """Close a pending workflow whose deadline has passed; no-op otherwise."""
    _ensure_open(workflow)
    if not workflow.is_expired(now):
        return workflow
    return _move(workflow, WorkflowStatus.EXPIRED, now)


def withdraw(workflow: Workflow, requestor: VoterReference, now: datetime) -> Workflow:
    if requestor.key != workflow.initiator.key:
        raise NotWorkflowInitiatorError()
    _ensure_open(workflow)
    return _move(workflow, WorkflowStatus.WITHDRAWN, now)


def cancel(workflow: Workflow, now: datetime) -> Workflow:
    _ensure_open(workflow)
    return _move(workflow, WorkflowStatus.CANCELED, now)


def cant_vote_reason(
    workflow: Workflow,
    template: WorkflowTemplate,
    entity_group_ids: set[UUID],
    rule_group_ids: list[UUID],
    now: datetime,
) -> CantVoteReason | None:
    """Return why an entity may not vote on a workflow, or None if it may."""
    if workflow.is_terminal:
        return CantVoteReason.WORKFLOW_NOT_PENDING
    if workflow.is_expired(now):
        return CantVoteReason.WORKFLOW_EXPIRED
    if not template.accepts_votes:
        return CantVoteReason.WORKFLOW_TEMPLATE_NOT_ACTIVE
    if not entity_group_ids.intersection(rule_group_ids):
        return CantVoteReason.ENTITY_NOT_IN_REQUIRED_GROUP
    return None


def _ensure_open(workflow: Workflow) -> None:
    if workflow.is_terminal:
        raise TerminalStateError(
            message=f"Workflow {workflow.id} is already {workflow.status.value}"
        )


def _move(workflow: Workflow, status: WorkflowStatus, now: datetime) -> Workflow:
    return replace(workflow, status=status, updated_at=now)
