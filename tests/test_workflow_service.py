"""
Tests for the Workflow Service.

These tests verify:
1. CREATE: expiry defaults, template state and the concurrent workflow quota
2. RECALCULATE: lost races are retried, then given up without losing the vote
3. WITHDRAW / EXPIRE: initiator-only withdrawal and the expiry sweep
"""

import logging
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from approval_ledger.domain import (
    ConcurrencyError,
    EvaluationResult,
    NotWorkflowInitiatorError,
    QuotaIdentifier,
    QuotaMetric,
    QuotaScope,
    TerminalStateError,
    WorkflowStatus,
    WorkflowTemplateNotFoundError,
    WorkflowTemplateStateError,
    WorkflowValidationError,
    transition,
)
from approval_ledger.models import GroupMembership
from approval_ledger.repositories import VoteRepository
from approval_ledger.services import (
    AuditAction,
    AuditService,
    CreateWorkflowInput,
    QuotaService,
    VoteService,
    WorkflowService,
    WorkflowTemplateService,
)
from helpers import group_rule, user


@pytest.fixture
def workflows(session: AsyncSession, config, clock) -> WorkflowService:
    return WorkflowService(session, config=config, clock=clock)


@pytest.fixture
def votes(session: AsyncSession, config, clock) -> VoteService:
    return VoteService(session, config=config, clock=clock)


@pytest.fixture
def members():
    return user(), user()


@pytest.fixture
async def group_id(make_group, members):
    return await make_group(*members)


@pytest.fixture
async def template(make_template, group_id):
    return await make_template(group_rule(group_id, 2))


def flaky_update_status(repo, monkeypatch, failures: int | None):
    """Make ``repo.update_status`` lose the race ``failures`` times (None: always)."""
    real = repo.update_status
    calls = []

    async def update_status(workflow, expected_version):
        calls.append(expected_version)
        if failures is None or len(calls) <= failures:
            raise ConcurrencyError(message="Version mismatch")
        return await real(workflow, expected_version=expected_version)

    monkeypatch.setattr(repo, "update_status", update_status)
    return calls


# =============================================================================
# TEST: CREATE WORKFLOW
# =============================================================================


class TestCreateWorkflow:
    async def test_defaults_to_configured_expiry(self, make_workflow, template):
        workflow = await make_workflow(template)

        assert workflow.status is WorkflowStatus.PENDING
        assert workflow.version == 1
        assert workflow.expires_at - workflow.created_at == timedelta(hours=720)

    async def test_template_default_expiry(self, make_template, make_workflow, group_id):
        template = await make_template(group_rule(group_id), default_expires_in_hours=48)
        workflow = await make_workflow(template)

        assert workflow.expires_at - workflow.created_at == timedelta(hours=48)

    async def test_explicit_expiry_wins(self, make_template, make_workflow, group_id):
        template = await make_template(group_rule(group_id), default_expires_in_hours=48)
        workflow = await make_workflow(template, expires_in_hours=2)

        assert workflow.expires_at - workflow.created_at == timedelta(hours=2)

    async def test_expiry_too_far(self, make_workflow, template, config):
        with pytest.raises(WorkflowValidationError) as exc_info:
            await make_workflow(template, expires_in_hours=config.max_expires_in_hours + 1)
        assert exc_info.value.code == "workflow_expires_at_too_far"

    async def test_zero_hours_is_not_the_default(self, make_workflow, template):
        with pytest.raises(WorkflowValidationError) as exc_info:
            await make_workflow(template, expires_in_hours=0)
        assert exc_info.value.code == "workflow_expires_at_in_the_past"

    async def test_invalid_name(self, workflows, template, initiator):
        with pytest.raises(WorkflowValidationError) as exc_info:
            await workflows.create_workflow(
                CreateWorkflowInput(template_id=template.id, name="two words"), initiator
            )
        assert exc_info.value.code == "workflow_name_invalid_characters"

    async def test_unknown_template(self, workflows, initiator):
        with pytest.raises(WorkflowTemplateNotFoundError):
            await workflows.create_workflow(
                CreateWorkflowInput(template_id=uuid4(), name="orphan"), initiator
            )

    async def test_template_being_deprecated(self, session, config, clock, make_workflow, template):
        await WorkflowTemplateService(session, config=config, clock=clock).mark_for_deprecation(
            template.id, cancel_workflows=True
        )

        with pytest.raises(WorkflowTemplateStateError) as exc_info:
            await make_workflow(template)
        assert exc_info.value.code == "workflow_template_not_active"

    async def test_concurrent_workflow_quota(self, session, workflows, make_workflow, template, initiator):
        identifier = QuotaIdentifier(QuotaScope.TEMPLATE, QuotaMetric.MAX_CONCURRENT_WORKFLOWS)
        await QuotaService(session).create_quota(identifier, limit=1)
        first = await make_workflow(template)

        with pytest.raises(WorkflowValidationError) as exc_info:
            await make_workflow(template)
        assert exc_info.value.code == "max_concurrent_workflows_reached"

        # Closing the first one frees the slot
        await workflows.withdraw_workflow(first.id, initiator)
        assert (await make_workflow(template)).status is WorkflowStatus.PENDING

    async def test_creation_is_audited(self, session, make_workflow, template, initiator):
        workflow = await make_workflow(template)
        await session.flush()

        events = await AuditService(session).get_events("workflow", workflow.id)

        assert [e.action for e in events] == [AuditAction.WORKFLOW_CREATED]
        assert events[0].actor_id == initiator.entity_id


# =============================================================================
# TEST: RECALCULATE STATUS
# =============================================================================


class TestRecalculateStatus:
    async def test_lost_race_is_retried(self, monkeypatch, votes, make_workflow, template, members, group_id):
        workflow = await make_workflow(template)
        alice, bob = members
        await votes.cast_vote(workflow.id, alice, "APPROVE", [group_id])

        calls = flaky_update_status(votes._workflows._workflows, monkeypatch, failures=1)
        result = await votes.cast_vote(workflow.id, bob, "APPROVE", [group_id])

        assert calls == [1, 1]
        assert result.settled is True
        assert result.workflow.status is WorkflowStatus.APPROVED
        assert result.workflow.version == 2

    async def test_gives_up_but_keeps_the_vote(
        self, session, monkeypatch, caplog, votes, config, make_workflow, template, members, group_id
    ):
        workflow = await make_workflow(template)
        alice, bob = members
        await votes.cast_vote(workflow.id, alice, "APPROVE", [group_id])

        calls = flaky_update_status(votes._workflows._workflows, monkeypatch, failures=None)
        with caplog.at_level(logging.ERROR):
            result = await votes.cast_vote(workflow.id, bob, "APPROVE", [group_id])

        assert len(calls) == config.vote_transition_max_attempts
        assert result.settled is False
        assert result.workflow.status is WorkflowStatus.PENDING
        assert "Giving up" in caplog.text

        stored = await VoteRepository(session).get_votes_by_workflow_id(workflow.id)
        assert result.vote.id in {v.id for v in stored}

    async def test_workflow_closed_by_the_winner(self, monkeypatch, votes, make_workflow, template, members, group_id):
        """The competing writer rejects the workflow first; the retry sees it closed."""
        workflow = await make_workflow(template)
        alice, bob = members
        await votes.cast_vote(workflow.id, alice, "APPROVE", [group_id])

        repo = votes._workflows._workflows
        real = repo.update_status

        async def competing_update(updated, expected_version):
            await real(transition(workflow, EvaluationResult.REJECTED, updated.updated_at), expected_version)
            return await real(updated, expected_version=expected_version)

        monkeypatch.setattr(repo, "update_status", competing_update)
        result = await votes.cast_vote(workflow.id, bob, "APPROVE", [group_id])

        assert result.settled is True
        assert result.workflow.status is WorkflowStatus.REJECTED
        assert result.workflow.version == 2

    async def test_membership_is_read_at_evaluation(self, session, votes, make_workflow, template, members, group_id):
        workflow = await make_workflow(template)
        alice, bob = members
        await votes.cast_vote(workflow.id, alice, "APPROVE", [group_id])

        await session.execute(
            delete(GroupMembership).where(
                GroupMembership.group_id == group_id,
                GroupMembership.entity_id == alice.entity_id,
            )
        )
        result = await votes.cast_vote(workflow.id, bob, "APPROVE", [group_id])

        assert result.workflow.status is WorkflowStatus.PENDING

    async def test_terminal_workflow_is_left_alone(self, workflows, make_workflow, template, initiator):
        workflow = await make_workflow(template)
        await workflows.withdraw_workflow(workflow.id, initiator)

        result = await workflows.recalculate_status(workflow.id)

        assert result.workflow.status is WorkflowStatus.WITHDRAWN
        assert result.evaluation is None
        assert result.attempts == 1


# =============================================================================
# TEST: WITHDRAW / EXPIRE
# =============================================================================


class TestWithdraw:
    async def test_initiator_withdraws(self, workflows, make_workflow, template, initiator):
        workflow = await make_workflow(template)

        withdrawn = await workflows.withdraw_workflow(workflow.id, initiator)

        assert withdrawn.status is WorkflowStatus.WITHDRAWN
        assert withdrawn.version == 2

    async def test_others_cannot_withdraw(self, workflows, make_workflow, template, members):
        workflow = await make_workflow(template)

        with pytest.raises(NotWorkflowInitiatorError) as exc_info:
            await workflows.withdraw_workflow(workflow.id, members[0])
        assert exc_info.value.code == "not_workflow_initiator"

    async def test_withdraw_twice(self, workflows, make_workflow, template, initiator):
        workflow = await make_workflow(template)
        await workflows.withdraw_workflow(workflow.id, initiator)

        with pytest.raises(TerminalStateError):
            await workflows.withdraw_workflow(workflow.id, initiator)


class TestExpireDueWorkflows:
    async def test_only_due_pending_workflows_expire(self, workflows, votes, make_workflow, template, clock, members):
        due = await make_workflow(template, expires_in_hours=1)
        vetoed = await make_workflow(template, expires_in_hours=1)
        later = await make_workflow(template, expires_in_hours=48)
        await votes.cast_vote(vetoed.id, members[0], "VETO")

        clock.advance(hours=2)
        assert await workflows.expire_due_workflows() == 1

        assert (await workflows.get_workflow(due.id)).status is WorkflowStatus.EXPIRED
        assert (await workflows.get_workflow(vetoed.id)).status is WorkflowStatus.REJECTED
        assert (await workflows.get_workflow(later.id)).status is WorkflowStatus.PENDING

    async def test_limit_caps_one_sweep(self, workflows, make_workflow, template, clock):
        for _ in range(3):
            await make_workflow(template, expires_in_hours=1)
        clock.advance(hours=2)

        assert await workflows.expire_due_workflows(limit=2) == 2
        assert await workflows.expire_due_workflows(limit=2) == 1
        assert await workflows.expire_due_workflows(limit=2) == 0

    async def test_conflict_skips_workflow(self, monkeypatch, workflows, make_workflow, template, clock):
        await make_workflow(template, expires_in_hours=1)
        clock.advance(hours=2)
        flaky_update_status(workflows._workflows, monkeypatch, failures=None)

        assert await workflows.expire_due_workflows() == 0
