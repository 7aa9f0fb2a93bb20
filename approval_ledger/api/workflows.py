"""API routes for voting on workflows."""

from uuid import UUID

from fastapi import APIRouter, status

from ..domain import ApprovalLedgerError
from ..schemas import CanVoteResponse, CastVoteRequest, CastVoteResponse, WorkflowResponse
from .deps import RequestorDep, VoteServiceDep, WorkflowServiceDep
from .errors import to_http_exception

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.get("/{workflow_id}/can-vote", response_model=CanVoteResponse)
async def can_vote(
    workflow_id: UUID,
    requestor: RequestorDep,
    votes: VoteServiceDep,
) -> CanVoteResponse:
    """Whether the requestor may vote, and whether it already did."""
    try:
        result = await votes.can_vote(workflow_id, requestor)
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return CanVoteResponse.from_result(result)


@router.post(
    "/{workflow_id}/votes",
    response_model=CastVoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def cast_vote(
    workflow_id: UUID,
    data: CastVoteRequest,
    requestor: RequestorDep,
    votes: VoteServiceDep,
) -> CastVoteResponse:
    """
    Cast a vote and re-evaluate the workflow.

    The returned workflow carries the status after the vote was applied.
    """
    try:
        result = await votes.cast_vote(
            workflow_id,
            requestor,
            type=data.type,
            voted_for_groups=data.voted_for_groups,
            reason=data.reason,
        )
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return CastVoteResponse.from_result(result)


@router.post("/{workflow_id}/withdraw", response_model=WorkflowResponse)
async def withdraw_workflow(
    workflow_id: UUID,
    requestor: RequestorDep,
    workflows: WorkflowServiceDep,
) -> WorkflowResponse:
    """Withdraw a pending workflow. Only its initiator may do so."""
    try:
        workflow = await workflows.withdraw_workflow(workflow_id, requestor)
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return WorkflowResponse.from_domain(workflow)
