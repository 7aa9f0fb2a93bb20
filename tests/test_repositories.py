"""
Tests for the repositories.

These tests verify:
1. OPTIMISTIC LOCKING: guarded writes against two real sessions
2. DATA INCONSISTENCY: rows that no longer validate surface generically
3. MEMBERSHIP SNAPSHOT: every requested group is present
"""

import logging
from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from approval_ledger.domain import (
    ConcurrencyError,
    DataInconsistencyError,
    EvaluationResult,
    VoteType,
    WorkflowFactory,
    WorkflowNotFoundError,
    WorkflowStatus,
    transition,
)
from approval_ledger.models import Vote as VoteRow
from approval_ledger.models import WorkflowTemplate as WorkflowTemplateRow
from approval_ledger.repositories import (
    GroupMembershipRepository,
    VoteRepository,
    WorkflowRepository,
    WorkflowTemplateRepository,
)
from helpers import T0, agent, group_rule, user


# =============================================================================
# TEST: OPTIMISTIC LOCKING
# =============================================================================


class TestOptimisticLocking:
    async def test_concurrent_transitions(
        self,
        session: AsyncSession,
        session_factory,
        make_group,
        make_template,
        initiator,
    ):
        """Two writers read v5 and both approve: the first wins, the second conflicts."""
        template = await make_template(group_rule(await make_group(user())))
        workflow = WorkflowFactory.new_workflow(
            template=template, name="contended", initiator=initiator, now=T0, expires_in_hours=24
        )
        await WorkflowRepository(session).create_workflow(replace(workflow, version=5))
        await session.commit()

        async with session_factory() as first, session_factory() as second:
            first_repo, second_repo = WorkflowRepository(first), WorkflowRepository(second)
            first_read = await first_repo.get_workflow_by_id(workflow.id)
            second_read = await second_repo.get_workflow_by_id(workflow.id)
            assert first_read.version == second_read.version == 5

            now = T0 + timedelta(minutes=5)
            written = await first_repo.update_status(
                transition(first_read, EvaluationResult.APPROVED, now), expected_version=5
            )
            await first.commit()
            assert written.version == 6

            with pytest.raises(ConcurrencyError) as exc_info:
                await second_repo.update_status(
                    transition(second_read, EvaluationResult.APPROVED, now), expected_version=5
                )
            assert exc_info.value.code == "concurrency_error"
            await second.rollback()

        stored = await WorkflowRepository(session).get_workflow_by_id(workflow.id)
        assert stored.version == 6
        assert stored.status is WorkflowStatus.APPROVED

    async def test_retry_after_reread_succeeds(self, session: AsyncSession, make_group, make_template, make_workflow):
        template = await make_template(group_rule(await make_group(user())))
        workflow = await make_workflow(template)
        repo = WorkflowRepository(session)

        await repo.update_status(transition(workflow, EvaluationResult.REJECTED, T0), expected_version=1)
        with pytest.raises(ConcurrencyError):
            await repo.update_status(transition(workflow, EvaluationResult.APPROVED, T0), expected_version=1)

        fresh = await repo.get_workflow_by_id(workflow.id)
        assert fresh.version == 2
        assert fresh.status is WorkflowStatus.REJECTED

    async def test_update_missing_workflow(self, session: AsyncSession, make_group, make_template, initiator):
        template = await make_template(group_rule(await make_group(user())))
        ghost = WorkflowFactory.new_workflow(
            template=template, name="ghost", initiator=initiator, now=T0, expires_in_hours=1
        )

        with pytest.raises(WorkflowNotFoundError):
            await WorkflowRepository(session).update_status(ghost, expected_version=1)

    async def test_get_missing_workflow(self, session: AsyncSession):
        with pytest.raises(WorkflowNotFoundError) as exc_info:
            await WorkflowRepository(session).get_workflow_by_id(uuid4())
        assert exc_info.value.code == "workflow_not_found"


# =============================================================================
# TEST: DATA INCONSISTENCY
# =============================================================================


class TestDataInconsistency:
    async def test_corrupted_rule(self, session: AsyncSession, space_id, caplog):
        row = WorkflowTemplateRow(
            id=uuid4(),
            space_id=space_id,
            name="corrupted",
            approval_rule={"type": "XOR", "rules": []},
            created_at=T0,
            updated_at=T0,
        )
        session.add(row)
        await session.flush()

        with caplog.at_level(logging.ERROR):
            with pytest.raises(DataInconsistencyError) as exc_info:
                await WorkflowTemplateRepository(session).get_template_by_id(row.id)

        assert exc_info.value.code == "internal_data_inconsistency"
        assert "XOR" not in str(exc_info.value)
        assert "invalid_rule_type" not in str(exc_info.value)
        assert str(row.id) in caplog.text

    async def test_rule_deeper_than_configured(self, session: AsyncSession, space_id, make_group):
        group_id = await make_group(user())
        row = WorkflowTemplateRow(
            id=uuid4(),
            space_id=space_id,
            name="deep",
            approval_rule={"type": "AND", "rules": [group_rule(group_id)]},
            created_at=T0,
            updated_at=T0,
        )
        session.add(row)
        await session.flush()

        with pytest.raises(DataInconsistencyError):
            await WorkflowTemplateRepository(session, max_rule_nesting_depth=0).get_template_by_id(row.id)

    async def test_corrupted_vote(self, session: AsyncSession, make_group, make_template, make_workflow):
        template = await make_template(group_rule(await make_group(user())))
        workflow = await make_workflow(template)
        voter = user()
        session.add(VoteRow(
            workflow_id=workflow.id,
            voter_id=voter.entity_id,
            voter_type=voter.entity_type,
            vote_type=VoteType.APPROVE,
            voted_for_groups=[],
            casted_at=T0,
        ))
        await session.flush()

        with pytest.raises(DataInconsistencyError):
            await VoteRepository(session).get_votes_by_workflow_id(workflow.id)


# =============================================================================
# TEST: MEMBERSHIP
# =============================================================================


class TestGroupMembership:
    async def test_snapshot_includes_empty_groups(self, session: AsyncSession, make_group):
        alice, bot = user(), agent()
        staffed = await make_group(alice, bot)
        empty = await make_group()

        snapshot = await GroupMembershipRepository(session).get_membership_snapshot([staffed, empty])

        assert snapshot == {staffed: frozenset({alice.key, bot.key}), empty: frozenset()}

    async def test_snapshot_of_nothing(self, session: AsyncSession):
        assert await GroupMembershipRepository(session).get_membership_snapshot([]) == {}

    async def test_entity_groups(self, session: AsyncSession, make_group):
        alice = user()
        g1 = await make_group(alice)
        g2 = await make_group(alice, user())
        await make_group(user())

        assert await GroupMembershipRepository(session).get_entity_group_ids(alice) == {g1, g2}

    async def test_existing_groups(self, session: AsyncSession, make_group):
        known = await make_group()
        missing = uuid4()

        existing = await GroupMembershipRepository(session).get_existing_group_ids([known, missing])

        assert existing == {known}
