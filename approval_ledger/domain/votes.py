"""
Votes: construction, validation and consolidation.

A vote is an append-only audit event. It is never updated or deleted;
consolidation is a read-time projection over the full vote history of a
workflow.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from .errors import VoteValidationError
from .voters import EntityType, VoterReference

VOTE_REASON_MAX_LENGTH = 1024


class VoteType(str, Enum):
    APPROVE = "APPROVE"
    VETO = "VETO"
    WITHDRAW = "WITHDRAW"


@dataclass(frozen=True)
class Vote:
    """A single vote cast on a workflow."""

    id: UUID
    workflow_id: UUID
    voter: VoterReference
    type: VoteType
    casted_at: datetime
    voted_for_groups: tuple[UUID, ...] = field(default_factory=tuple)
    reason: str | None = None

    @property
    def is_decisive(self) -> bool:
        """APPROVE and VETO count towards a decision, WITHDRAW does not."""
        return self.type in (VoteType.APPROVE, VoteType.VETO)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "workflow_id": str(self.workflow_id),
            "voter": self.voter.to_dict(),
            "type": self.type.value,
            "voted_for_groups": [str(g) for g in self.voted_for_groups],
            "reason": self.reason,
            "casted_at": self.casted_at,
        }


# =============================================================================
# FACTORY
# =============================================================================


class VoteFactory:
    """Builds and validates votes from raw input."""

    @staticmethod
    def new_vote(
        data: Mapping[str, Any],
        *,
        now: datetime | None = None,
        reason_max_length: int = VOTE_REASON_MAX_LENGTH,
    ) -> Vote:
        """Create a vote with a fresh id and the current timestamp."""
        raw = dict(data)
        raw["id"] = uuid4()
        raw["casted_at"] = now or datetime.now(timezone.utc)
        return VoteFactory.validate(raw, reason_max_length=reason_max_length)

    @staticmethod
    def validate(
        data: Mapping[str, Any] | Vote,
        *,
        reason_max_length: int = VOTE_REASON_MAX_LENGTH,
    ) -> Vote:
        """
        Validate raw vote data (or an existing Vote) and return a Vote.

        Checks run in a fixed order and the first failure wins:
        workflow id, voter, vote type, reason length, then approved groups.

        Raises:
            VoteValidationError: with the code of the first failing check
        """
        if isinstance(data, Vote):
            data = data.to_dict()

        workflow_id = _parse_uuid(data.get("workflow_id"))
        if workflow_id is None:
            raise VoteValidationError("invalid_workflow_id")

        voter = _resolve_voter(data)

        try:
            vote_type = VoteType(data.get("type"))
        except ValueError:
            raise VoteValidationError("invalid_vote_type")

        reason = data.get("reason") or None
        if reason is not None and not isinstance(reason, str):
            raise VoteValidationError("invalid_reason")
        if reason is not None and len(reason) > reason_max_length:
            raise VoteValidationError("reason_too_long")

        groups: tuple[UUID, ...] = ()
        if vote_type is VoteType.APPROVE:
            groups = _validate_groups(data.get("voted_for_groups"))

        vote_id = _parse_uuid(data.get("id"))
        if vote_id is None:
            raise VoteValidationError("invalid_vote_id")

        casted_at = data.get("casted_at")
        if not isinstance(casted_at, datetime):
            raise VoteValidationError("invalid_casted_at")
        if casted_at.tzinfo is None:
            casted_at = casted_at.replace(tzinfo=timezone.utc)

        return Vote(
            id=vote_id,
            workflow_id=workflow_id,
            voter=voter,
            type=vote_type,
            casted_at=casted_at,
            voted_for_groups=groups,
            reason=reason,
        )


def _parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def _resolve_voter(data: Mapping[str, Any]) -> VoterReference:
    """Accept either a ``voter`` mapping or exactly one of user_id/agent_id."""
    voter = data.get("voter")
    user_id = data.get("user_id")
    agent_id = data.get("agent_id")

    if voter is None:
        if user_id is not None and agent_id is not None:
            raise VoteValidationError("conflicting_voter_entities")
        if user_id is None and agent_id is None:
            raise VoteValidationError("missing_voter_entity")
        if user_id is not None:
            voter = {"entity_id": user_id, "entity_type": EntityType.USER}
        else:
            voter = {"entity_id": agent_id, "entity_type": EntityType.AGENT}
    elif user_id is not None or agent_id is not None:
        raise VoteValidationError("conflicting_voter_entities")

    if isinstance(voter, VoterReference):
        voter = {"entity_id": voter.entity_id, "entity_type": voter.entity_type}
    if not isinstance(voter, Mapping):
        raise VoteValidationError("missing_voter_entity")

    entity_id = _parse_uuid(voter.get("entity_id"))
    if entity_id is None:
        raise VoteValidationError("invalid_voter_id")

    try:
        entity_type = EntityType(voter.get("entity_type"))
    except ValueError:
        raise VoteValidationError("invalid_voter_type")

    return VoterReference(entity_id=entity_id, entity_type=entity_type)


def _validate_groups(raw_groups: Any) -> tuple[UUID, ...]:
    if not raw_groups:
        raise VoteValidationError("voted_for_groups_required")
    if isinstance(raw_groups, (str, bytes)) or not isinstance(raw_groups, Iterable):
        raise VoteValidationError("invalid_group_id")

    groups: list[UUID] = []
    for raw in raw_groups:
        group_id = _parse_uuid(raw)
        if group_id is None:
            raise VoteValidationError("invalid_group_id")
        if group_id not in groups:
            groups.append(group_id)
    return tuple(groups)


# =============================================================================
# CONSOLIDATION
# =============================================================================


def _recency_key(vote: Vote) -> tuple[datetime, str]:
    # Equal timestamps fall back to the vote id so the order never depends
    # on the order the votes were loaded in.
    return (vote.casted_at, str(vote.id))


def consolidate_votes(votes: Iterable[Vote]) -> list[Vote]:
    """
    Reduce a vote history to one effective vote per voter.

    The most recent vote of each voter wins. A most recent WITHDRAW removes
    the voter from the result. The result only contains APPROVE and VETO
    votes, most recently cast first.
    """
    seen: set[str] = set()
    effective: list[Vote] = []

    for vote in sorted(votes, key=_recency_key, reverse=True):
        key = vote.voter.key
        if key in seen:
            continue
        seen.add(key)
        if vote.is_decisive:
            effective.append(vote)

    return effective
