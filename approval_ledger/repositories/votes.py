"""Vote persistence. Votes are only ever inserted and read."""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import Vote, VoteFactory, VoterReference, VoteValidationError, WorkflowNotFoundError
from ..models import Vote as VoteRow
from .base import data_inconsistency

logger = logging.getLogger(__name__)


class VoteRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def persist_vote(self, vote: Vote) -> Vote:
        """INSERT a vote. There is no update path."""
        row = VoteRow(
            id=vote.id,
            workflow_id=vote.workflow_id,
            voter_id=vote.voter.entity_id,
            voter_type=vote.voter.entity_type,
            vote_type=vote.type,
            voted_for_groups=[str(g) for g in vote.voted_for_groups],
            reason=vote.reason,
            casted_at=vote.casted_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            logger.error(f"Error saving vote for workflow {vote.workflow_id} and voter {vote.voter.key}: {e}")
            raise WorkflowNotFoundError(message=f"Workflow {vote.workflow_id} not found")
        return vote

    async def get_votes_by_workflow_id(self, workflow_id: UUID) -> list[Vote]:
        """The full, unordered vote history of a workflow."""
        result = await self._session.execute(
            select(VoteRow).where(VoteRow.workflow_id == workflow_id)
        )
        return [_to_domain(row) for row in result.scalars().all()]

    async def get_latest_vote(self, workflow_id: UUID, voter: VoterReference) -> Vote | None:
        result = await self._session.execute(
            select(VoteRow)
            .where(
                VoteRow.workflow_id == workflow_id,
                VoteRow.voter_id == voter.entity_id,
                VoteRow.voter_type == voter.entity_type,
            )
            .order_by(VoteRow.casted_at.desc(), VoteRow.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _to_domain(row) if row else None


def _to_domain(row: VoteRow) -> Vote:
    try:
        return VoteFactory.validate({
            "id": row.id,
            "workflow_id": row.workflow_id,
            "voter": {"entity_id": row.voter_id, "entity_type": row.voter_type},
            "type": row.vote_type,
            "voted_for_groups": row.voted_for_groups,
            "reason": row.reason,
            "casted_at": row.casted_at,
        })
    except VoteValidationError as e:
        raise data_inconsistency("vote", row.id, e)
