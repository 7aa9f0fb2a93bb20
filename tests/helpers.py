"""Builders shared by the test modules."""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from approval_ledger.domain import (
    EntityType,
    Vote,
    VoterReference,
    VoteType,
)

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock. Every read moves time forward by one second."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def user() -> VoterReference:
    return VoterReference(entity_id=uuid4(), entity_type=EntityType.USER)


def agent() -> VoterReference:
    return VoterReference(entity_id=uuid4(), entity_type=EntityType.AGENT)


def group_rule(group_id: UUID, min_count: int = 1) -> dict:
    return {"type": "GROUP_REQUIREMENT", "group_id": str(group_id), "min_count": min_count}


def make_vote(
    voter: VoterReference,
    type: VoteType,
    at: int = 0,
    groups: tuple[UUID, ...] = (),
    workflow_id: UUID | None = None,
    vote_id: UUID | None = None,
) -> Vote:
    """A vote cast ``at`` seconds after T0."""
    return Vote(
        id=vote_id or uuid4(),
        workflow_id=workflow_id or UUID(int=1),
        voter=voter,
        type=type,
        casted_at=T0 + timedelta(seconds=at),
        voted_for_groups=groups if type is VoteType.APPROVE else (),
    )
