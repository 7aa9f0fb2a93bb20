"""
Tests for vote validation and consolidation.

These tests verify:
1. VALIDATION: checks run in a fixed order, first failure wins
2. NORMALIZATION: groups are de-duplicated, non-APPROVE votes carry none
3. CONSOLIDATION: latest vote per voter wins, WITHDRAW removes the voter
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from approval_ledger.domain import (
    EntityType,
    VoteFactory,
    VoterReference,
    VoteType,
    VoteValidationError,
    consolidate_votes,
)
from helpers import T0, agent, make_vote, user


def raw_vote(**overrides) -> dict:
    data = {
        "workflow_id": str(uuid4()),
        "user_id": str(uuid4()),
        "type": "APPROVE",
        "voted_for_groups": [str(uuid4())],
    }
    data.update(overrides)
    return data


def error_code(data: dict) -> str:
    with pytest.raises(VoteValidationError) as exc_info:
        VoteFactory.new_vote(data, now=T0)
    return exc_info.value.code


# =============================================================================
# TEST: VALIDATION
# =============================================================================


class TestVoteValidation:
    def test_valid_approve_vote(self):
        group_id = uuid4()
        vote = VoteFactory.new_vote(raw_vote(voted_for_groups=[str(group_id)], reason="lgtm"), now=T0)

        assert vote.type is VoteType.APPROVE
        assert vote.voted_for_groups == (group_id,)
        assert vote.voter.entity_type is EntityType.USER
        assert vote.reason == "lgtm"
        assert vote.casted_at == T0
        assert isinstance(vote.id, UUID)

    def test_agent_vote(self):
        agent_id = uuid4()
        vote = VoteFactory.new_vote(
            raw_vote(user_id=None, agent_id=str(agent_id), type="VETO"), now=T0
        )
        assert vote.voter == VoterReference(entity_id=agent_id, entity_type=EntityType.AGENT)

    def test_voter_reference_accepted(self):
        voter = agent()
        vote = VoteFactory.new_vote(raw_vote(user_id=None, voter=voter), now=T0)
        assert vote.voter == voter

    def test_invalid_workflow_id(self):
        assert error_code(raw_vote(workflow_id="not-a-uuid")) == "invalid_workflow_id"

    def test_missing_voter(self):
        assert error_code(raw_vote(user_id=None)) == "missing_voter_entity"

    def test_conflicting_voters(self):
        assert error_code(raw_vote(agent_id=str(uuid4()))) == "conflicting_voter_entities"

    def test_invalid_voter_id(self):
        assert error_code(raw_vote(user_id="42")) == "invalid_voter_id"

    def test_invalid_voter_type(self):
        data = raw_vote(user_id=None, voter={"entity_id": str(uuid4()), "entity_type": "robot"})
        assert error_code(data) == "invalid_voter_type"

    def test_invalid_vote_type(self):
        assert error_code(raw_vote(type="ABSTAIN")) == "invalid_vote_type"

    def test_reason_too_long(self):
        assert error_code(raw_vote(reason="x" * 1025)) == "reason_too_long"

    def test_reason_at_limit_is_accepted(self):
        vote = VoteFactory.new_vote(raw_vote(reason="x" * 1024), now=T0)
        assert len(vote.reason) == 1024

    def test_configured_reason_length(self):
        with pytest.raises(VoteValidationError) as exc_info:
            VoteFactory.new_vote(raw_vote(reason="x" * 11), now=T0, reason_max_length=10)
        assert exc_info.value.code == "reason_too_long"

    def test_approve_requires_groups(self):
        assert error_code(raw_vote(voted_for_groups=[])) == "voted_for_groups_required"
        assert error_code(raw_vote(voted_for_groups=None)) == "voted_for_groups_required"

    def test_invalid_group_id(self):
        assert error_code(raw_vote(voted_for_groups=[str(uuid4()), "nope"])) == "invalid_group_id"

    def test_first_failure_wins(self):
        """A vote broken in every way reports the workflow id first."""
        data = raw_vote(
            workflow_id="bad",
            user_id="bad",
            type="bad",
            reason="x" * 2000,
            voted_for_groups=["bad"],
        )
        assert error_code(data) == "invalid_workflow_id"

        data["workflow_id"] = str(uuid4())
        assert error_code(data) == "invalid_voter_id"

        data["user_id"] = str(uuid4())
        assert error_code(data) == "invalid_vote_type"

        data["type"] = "APPROVE"
        assert error_code(data) == "reason_too_long"

        data["reason"] = None
        assert error_code(data) == "invalid_group_id"


class TestVoteNormalization:
    def test_groups_deduplicated_in_order(self):
        a, b = uuid4(), uuid4()
        vote = VoteFactory.new_vote(
            raw_vote(voted_for_groups=[str(a), str(b), str(a)]), now=T0
        )
        assert vote.voted_for_groups == (a, b)

    @pytest.mark.parametrize("vote_type", ["VETO", "WITHDRAW"])
    def test_non_approve_votes_carry_no_groups(self, vote_type):
        vote = VoteFactory.new_vote(
            raw_vote(type=vote_type, voted_for_groups=["ignored"]), now=T0
        )
        assert vote.voted_for_groups == ()

    def test_naive_timestamp_read_as_utc(self):
        vote = VoteFactory.validate({
            **raw_vote(),
            "id": uuid4(),
            "casted_at": datetime(2026, 1, 5, 9, 0),
        })
        assert vote.casted_at == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def test_revalidating_a_vote_is_identity(self):
        vote = VoteFactory.new_vote(raw_vote(reason="ok"), now=T0)
        assert VoteFactory.validate(vote) == vote


# =============================================================================
# TEST: CONSOLIDATION
# =============================================================================


class TestConsolidation:
    def test_latest_vote_per_voter_wins(self):
        alice = user()
        group_id = uuid4()
        votes = [
            make_vote(alice, VoteType.APPROVE, at=0, groups=(group_id,)),
            make_vote(alice, VoteType.VETO, at=10),
        ]

        result = consolidate_votes(votes)

        assert [v.type for v in result] == [VoteType.VETO]

    def test_withdraw_removes_voter(self):
        alice, bob = user(), user()
        group_id = uuid4()
        votes = [
            make_vote(alice, VoteType.APPROVE, at=0, groups=(group_id,)),
            make_vote(alice, VoteType.WITHDRAW, at=5),
            make_vote(bob, VoteType.APPROVE, at=3, groups=(group_id,)),
        ]

        result = consolidate_votes(votes)

        assert [v.voter for v in result] == [bob]

    def test_vote_after_withdraw_counts(self):
        alice = user()
        group_id = uuid4()
        votes = [
            make_vote(alice, VoteType.APPROVE, at=0, groups=(group_id,)),
            make_vote(alice, VoteType.WITHDRAW, at=5),
            make_vote(alice, VoteType.APPROVE, at=9, groups=(group_id,)),
        ]

        result = consolidate_votes(votes)

        assert len(result) == 1
        assert result[0].casted_at == votes[2].casted_at

    def test_user_and_agent_with_same_id_are_distinct(self):
        raw_id = uuid4()
        as_user = VoterReference(entity_id=raw_id, entity_type=EntityType.USER)
        as_agent = VoterReference(entity_id=raw_id, entity_type=EntityType.AGENT)

        result = consolidate_votes([
            make_vote(as_user, VoteType.VETO, at=0),
            make_vote(as_agent, VoteType.VETO, at=1),
        ])

        assert {v.voter for v in result} == {as_user, as_agent}

    def test_ordered_most_recent_first(self):
        voters = [user() for _ in range(3)]
        votes = [make_vote(v, VoteType.VETO, at=i) for i, v in enumerate(voters)]

        result = consolidate_votes(votes)

        assert [v.voter for v in result] == list(reversed(voters))

    def test_timestamp_tie_broken_by_vote_id(self):
        """Same timestamp: the greater id string is treated as more recent."""
        alice = user()
        group_id = uuid4()
        low = make_vote(alice, VoteType.APPROVE, at=0, groups=(group_id,), vote_id=UUID(int=1))
        high = make_vote(alice, VoteType.VETO, at=0, vote_id=UUID(int=2))

        assert consolidate_votes([low, high]) == [high]
        assert consolidate_votes([high, low]) == [high]

    def test_empty_history(self):
        assert consolidate_votes([]) == []

    def test_idempotent(self):
        alice, bob = user(), user()
        group_id = uuid4()
        votes = [
            make_vote(alice, VoteType.APPROVE, at=0, groups=(group_id,)),
            make_vote(bob, VoteType.VETO, at=1),
            make_vote(alice, VoteType.WITHDRAW, at=2),
        ]

        once = consolidate_votes(votes)
        assert consolidate_votes(once) == once
