"""
Vote Service: eligibility checks and vote casting.

Casting is optimistic. Eligibility is checked before the vote is stored, but
membership may change right after the check; the vote is kept anyway and its
weight is decided by the membership snapshot of the next evaluation.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..domain import (
    CantVoteError,
    CantVoteReason,
    GroupNotFoundError,
    Vote,
    VoteFactory,
    VoterReference,
    VoteType,
    Workflow,
    cant_vote_reason,
    rule_group_ids,
)
from ..repositories import GroupMembershipRepository, VoteRepository
from .audit import AuditAction, AuditService
from .config import DEFAULT_CONFIG, EngineConfig
from .workflows import WorkflowService

logger = logging.getLogger(__name__)


class VoteStatus(str, Enum):
    ALREADY_VOTED = "ALREADY_VOTED"
    # No vote yet, or the latest one was withdrawn
    VOTE_PENDING = "VOTE_PENDING"


@dataclass
class CanVoteResult:
    can_vote: bool
    reason: CantVoteReason | None
    status: VoteStatus


@dataclass
class CastVoteResult:
    vote: Vote
    workflow: Workflow
    # False when the status recalculation kept losing races; the vote is stored regardless
    settled: bool = True


class VoteService:
    def __init__(
        self,
        session: AsyncSession,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Clock = utc_now,
    ):
        self._config = config
        self._clock = clock
        self._votes = VoteRepository(session)
        self._groups = GroupMembershipRepository(session)
        self._workflows = WorkflowService(session, config=config, clock=clock)
        self._audit = AuditService(session)

    async def can_vote(self, workflow_id: UUID, requestor: VoterReference) -> CanVoteResult:
        """Whether ``requestor`` may vote on the workflow, and whether it already has."""
        workflow, template = await self._workflows.get_workflow_with_template(workflow_id)
        entity_group_ids = await self._groups.get_entity_group_ids(requestor)
        latest = await self._votes.get_latest_vote(workflow_id, requestor)

        reason = cant_vote_reason(
            workflow,
            template,
            entity_group_ids,
            rule_group_ids(template.approval_rule),
            self._clock(),
        )
        return CanVoteResult(
            can_vote=reason is None,
            reason=reason,
            status=_vote_status(latest),
        )

    async def cast_vote(
        self,
        workflow_id: Any,
        requestor: VoterReference,
        type: Any,
        voted_for_groups: Iterable[Any] | None = None,
        reason: str | None = None,
    ) -> CastVoteResult:
        """
        Validate, store and apply a vote.

        Raises:
            VoteValidationError: malformed vote
            WorkflowNotFoundError: unknown workflow
            CantVoteError: the requestor may not vote on this workflow
            GroupNotFoundError: an approved-for group does not exist
        """
        vote = VoteFactory.new_vote(
            {
                "workflow_id": workflow_id,
                "voter": requestor,
                "type": type,
                "voted_for_groups": list(voted_for_groups) if voted_for_groups is not None else None,
                "reason": reason,
            },
            now=self._clock(),
            reason_max_length=self._config.vote_reason_max_length,
        )

        eligibility = await self.can_vote(vote.workflow_id, vote.voter)
        if not eligibility.can_vote:
            logger.warning(
                f"Entity {vote.voter.key} cannot vote for workflow {vote.workflow_id}: "
                f"{eligibility.reason.value}"
            )
            raise CantVoteError(eligibility.reason.value)

        if vote.voted_for_groups:
            existing = await self._groups.get_existing_group_ids(vote.voted_for_groups)
            missing = [g for g in vote.voted_for_groups if g not in existing]
            if missing:
                raise GroupNotFoundError(message=f"Group {missing[0]} not found")

        vote = await self._votes.persist_vote(vote)
        self._audit.log_event(
            action=AuditAction.VOTE_CAST,
            resource_type="workflow",
            resource_id=vote.workflow_id,
            created_at=vote.casted_at,
            actor=vote.voter,
            details={"vote_id": str(vote.id), "type": vote.type.value},
        )

        recalculation = await self._workflows.recalculate_status(vote.workflow_id)
        return CastVoteResult(
            vote=vote,
            workflow=recalculation.workflow,
            settled=recalculation.settled,
        )


def _vote_status(latest: Vote | None) -> VoteStatus:
    if latest is None or latest.type is VoteType.WITHDRAW:
        return VoteStatus.VOTE_PENDING
    return VoteStatus.ALREADY_VOTED
