"""Pydantic schemas for workflows, votes and template cancellation."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ..domain import Vote, Workflow
from ..services import CanVoteResult, CancellationReport, CastVoteResult
from .base import EntityRef, LedgerBaseModel


# =============================================================================
# WORKFLOWS
# =============================================================================


class WorkflowResponse(LedgerBaseModel):
    id: UUID
    template_id: UUID
    name: str
    description: str | None = None
    status: str
    initiator: EntityRef
    expires_at: datetime
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, workflow: Workflow) -> "WorkflowResponse":
        return cls(
            id=workflow.id,
            template_id=workflow.template_id,
            name=workflow.name,
            description=workflow.description,
            status=workflow.status.value,
            initiator=EntityRef(
                entity_id=workflow.initiator.entity_id,
                entity_type=workflow.initiator.entity_type,
            ),
            expires_at=workflow.expires_at,
            version=workflow.version,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )


# =============================================================================
# VOTES
# =============================================================================


class CastVoteRequest(LedgerBaseModel):
    """Raw vote input. Content rules are enforced by the vote factory so
    clients get the same error codes whatever the transport."""

    type: Any = None
    voted_for_groups: list[Any] | None = Field(default=None, alias="votedForGroups")
    reason: Any = None


class VoteResponse(LedgerBaseModel):
    id: UUID
    workflow_id: UUID
    voter: EntityRef
    type: str
    voted_for_groups: list[UUID] = []
    reason: str | None = None
    casted_at: datetime

    @classmethod
    def from_domain(cls, vote: Vote) -> "VoteResponse":
        return cls(
            id=vote.id,
            workflow_id=vote.workflow_id,
            voter=EntityRef(entity_id=vote.voter.entity_id, entity_type=vote.voter.entity_type),
            type=vote.type.value,
            voted_for_groups=list(vote.voted_for_groups),
            reason=vote.reason,
            casted_at=vote.casted_at,
        )


class CastVoteResponse(LedgerBaseModel):
    vote: VoteResponse
    workflow: WorkflowResponse
    settled: bool

    @classmethod
    def from_result(cls, result: CastVoteResult) -> "CastVoteResponse":
        return cls(
            vote=VoteResponse.from_domain(result.vote),
            workflow=WorkflowResponse.from_domain(result.workflow),
            settled=result.settled,
        )


class CanVoteResponse(LedgerBaseModel):
    can_vote: bool
    reason: str | None = None
    vote_status: str

    @classmethod
    def from_result(cls, result: CanVoteResult) -> "CanVoteResponse":
        return cls(
            can_vote=result.can_vote,
            reason=result.reason.value if result.reason else None,
            vote_status=result.status.value,
        )


# =============================================================================
# TEMPLATE CANCELLATION
# =============================================================================


class CancelWorkflowsResponse(LedgerBaseModel):
    template_id: UUID
    template_status: str
    canceled_workflow_ids: list[UUID]
    attempts: int

    @classmethod
    def from_report(cls, report: CancellationReport) -> "CancelWorkflowsResponse":
        return cls(
            template_id=report.template.id,
            template_status=report.template.status.value,
            canceled_workflow_ids=report.canceled_workflow_ids,
            attempts=report.attempts,
        )
