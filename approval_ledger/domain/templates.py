"""Workflow templates and their deprecation lifecycle."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from .errors import WorkflowTemplateStateError
from .rules import ApprovalRule


class WorkflowTemplateStatus(str, Enum):
    # Can be referenced to create new workflows
    ACTIVE = "ACTIVE"
    # Deprecated while pending workflows are still being cancelled
    PENDING_DEPRECATION = "PENDING_DEPRECATION"
    # Cannot be referenced; voting depends on allow_voting_on_deprecated_template
    DEPRECATED = "DEPRECATED"


@dataclass(frozen=True)
class WorkflowTemplate:
    id: UUID
    name: str
    space_id: UUID
    approval_rule: ApprovalRule
    status: WorkflowTemplateStatus
    created_at: datetime
    updated_at: datetime
    allow_voting_on_deprecated_template: bool = True
    default_expires_in_hours: int | None = None
    description: str | None = None

    @property
    def accepts_votes(self) -> bool:
        return (
            self.status is WorkflowTemplateStatus.ACTIVE
            or self.allow_voting_on_deprecated_template
        )


def mark_template_for_deprecation(
    template: WorkflowTemplate,
    cancel_workflows: bool,
    now: datetime,
) -> WorkflowTemplate:
    """Move an active template to PENDING_DEPRECATION.

    When ``cancel_workflows`` is set, voting on its workflows stops and the
    pending ones are cancelled by the bulk cancellation.
    """
    if template.status is not WorkflowTemplateStatus.ACTIVE:
        raise WorkflowTemplateStateError("workflow_template_not_active")
    return replace(
        template,
        status=WorkflowTemplateStatus.PENDING_DEPRECATION,
        allow_voting_on_deprecated_template=not cancel_workflows,
        updated_at=now,
    )


def mark_template_as_deprecated(template: WorkflowTemplate, now: datetime) -> WorkflowTemplate:
    if template.status is not WorkflowTemplateStatus.PENDING_DEPRECATION:
        raise WorkflowTemplateStateError("workflow_template_not_pending_deprecation")
    return replace(template, status=WorkflowTemplateStatus.DEPRECATED, updated_at=now)
