"""
Workflow Service: creation and status transitions.

Every status change follows the same cycle:
1. Read the workflow (and its version)
2. Compute the next state with the pure domain functions
3. Write it with a version-guarded UPDATE
4. On a lost race, re-read and repeat, up to a fixed number of attempts
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..domain import (
    ConcurrencyError,
    EvaluationResult,
    QuotaIdentifier,
    QuotaMetric,
    QuotaScope,
    VoterReference,
    Workflow,
    WorkflowFactory,
    WorkflowTemplate,
    WorkflowTemplateStateError,
    WorkflowTemplateStatus,
    WorkflowValidationError,
    consolidate_votes,
    evaluate,
    expire,
    rule_group_ids,
    transition,
    withdraw,
)
from ..repositories import (
    GroupMembershipRepository,
    VoteRepository,
    WorkflowRepository,
    WorkflowTemplateRepository,
)
from .audit import AuditAction, AuditService
from .config import DEFAULT_CONFIG, EngineConfig
from .quotas import QuotaService

logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class CreateWorkflowInput:
    template_id: UUID
    name: str
    description: str | None = None
    expires_in_hours: int | None = None


@dataclass
class RecalculationResult:
    """Outcome of re-evaluating a workflow after a vote."""
    workflow: Workflow
    evaluation: EvaluationResult | None
    # False when every attempt lost the race against another writer
    settled: bool = True
    attempts: int = 1


# =============================================================================
# WORKFLOW SERVICE
# =============================================================================


class WorkflowService:
    def __init__(
        self,
        session: AsyncSession,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Clock = utc_now,
    ):
        self._session = session
        self._config = config
        self._clock = clock
        self._workflows = WorkflowRepository(session)
        self._templates = WorkflowTemplateRepository(
            session, max_rule_nesting_depth=config.max_rule_nesting_depth
        )
        self._votes = VoteRepository(session)
        self._groups = GroupMembershipRepository(session)
        self._quotas = QuotaService(session, clock=clock)
        self._audit = AuditService(session)

    async def get_workflow(self, workflow_id: UUID) -> Workflow:
        return await self._workflows.get_workflow_by_id(workflow_id)

    async def get_workflow_with_template(self, workflow_id: UUID) -> tuple[Workflow, WorkflowTemplate]:
        workflow = await self._workflows.get_workflow_by_id(workflow_id)
        template = await self._templates.get_template_by_id(workflow.template_id)
        return workflow, template

    # =========================================================================
    # CREATE WORKFLOW
    # =========================================================================

    async def create_workflow(self, input: CreateWorkflowInput, initiator: VoterReference) -> Workflow:
        """
        Open a new pending workflow on an active template.

        Raises:
            WorkflowTemplateNotFoundError: unknown template
            WorkflowTemplateStateError: the template is being deprecated
            WorkflowValidationError: invalid name, description or expiry, or
                the template already has its maximum of pending workflows
        """
        template = await self._templates.get_template_by_id(input.template_id)
        if template.status is not WorkflowTemplateStatus.ACTIVE:
            raise WorkflowTemplateStateError("workflow_template_not_active")

        expires_in_hours = input.expires_in_hours
        if expires_in_hours is None:
            expires_in_hours = (
                template.default_expires_in_hours
                or self._config.default_workflow_expires_in_hours
            )
        if expires_in_hours > self._config.max_expires_in_hours:
            raise WorkflowValidationError("workflow_expires_at_too_far")

        identifier = QuotaIdentifier(QuotaScope.TEMPLATE, QuotaMetric.MAX_CONCURRENT_WORKFLOWS)
        if not await self._quotas.check_quota(identifier, target_id=template.id):
            raise WorkflowValidationError("max_concurrent_workflows_reached")

        now = self._clock()
        workflow = WorkflowFactory.new_workflow(
            template=template,
            name=input.name,
            description=input.description,
            initiator=initiator,
            now=now,
            expires_in_hours=expires_in_hours,
        )
        workflow = await self._workflows.create_workflow(workflow)

        self._audit.log_event(
            action=AuditAction.WORKFLOW_CREATED,
            resource_type="workflow",
            resource_id=workflow.id,
            created_at=now,
            actor=initiator,
            details={"template_id": str(template.id), "expires_at": workflow.expires_at.isoformat()},
        )
        logger.info(f"Workflow {workflow.id} created on template {template.id}")
        return workflow

    # =========================================================================
    # RECALCULATE STATUS
    # =========================================================================

    async def recalculate_status(self, workflow_id: UUID) -> RecalculationResult:
        """
        Re-evaluate a workflow from its full vote history and persist the
        resulting status.

        A lost race re-reads the workflow and tries again, up to
        ``vote_transition_max_attempts`` times. When the workflow is already
        closed (possibly by the writer that won the race) it is returned
        as is.
        """
        max_attempts = self._config.vote_transition_max_attempts
        workflow = None

        for attempt in range(1, max_attempts + 1):
            workflow, template = await self.get_workflow_with_template(workflow_id)
            if workflow.is_terminal:
                return RecalculationResult(workflow=workflow, evaluation=None, attempts=attempt)

            votes = consolidate_votes(await self._votes.get_votes_by_workflow_id(workflow_id))
            membership = await self._groups.get_membership_snapshot(
                rule_group_ids(template.approval_rule)
            )
            evaluation = evaluate(template.approval_rule, votes, membership)

            now = self._clock()
            updated = transition(workflow, evaluation, now)
            if updated is workflow:
                return RecalculationResult(workflow=workflow, evaluation=evaluation, attempts=attempt)

            try:
                persisted = await self._persist_transition(workflow, updated, now)
            except ConcurrencyError:
                logger.warning(
                    f"Concurrent update on workflow {workflow_id}, "
                    f"retrying ({attempt}/{max_attempts})"
                )
                continue

            return RecalculationResult(workflow=persisted, evaluation=evaluation, attempts=attempt)

        logger.error(
            f"Giving up recalculating workflow {workflow_id} after {max_attempts} attempts"
        )
        return RecalculationResult(
            workflow=workflow,
            evaluation=None,
            settled=False,
            attempts=max_attempts,
        )

    # =========================================================================
    # WITHDRAW / EXPIRE
    # =========================================================================

    async def withdraw_workflow(self, workflow_id: UUID, requestor: VoterReference) -> Workflow:
        """
        Close a pending workflow on behalf of its initiator.

        Raises:
            NotWorkflowInitiatorError: the requestor did not open the workflow
            TerminalStateError: the workflow is already closed
            ConcurrencyError: another transition committed in between
        """
        workflow = await self._workflows.get_workflow_by_id(workflow_id)
        now = self._clock()
        updated = withdraw(workflow, requestor, now)
        return await self._persist_transition(workflow, updated, now, actor=requestor)

    async def expire_due_workflows(self, now: datetime | None = None, limit: int = 500) -> int:
        """
        Move every pending workflow past its deadline to EXPIRED.

        Workflows another writer closed in the meantime are skipped.

        Returns:
            Number of workflows expired by this sweep
        """
        now = now or self._clock()
        expired_count = 0

        for workflow in await self._workflows.list_due_for_expiry(now, limit=limit):
            updated = expire(workflow, now)
            if updated is workflow:
                continue
            try:
                await self._persist_transition(workflow, updated, now)
            except ConcurrencyError as e:
                logger.warning(f"Skipping expiry of workflow {workflow.id}: {e}")
                continue
            expired_count += 1

        if expired_count:
            logger.info(f"Expired {expired_count} workflows")
        return expired_count

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _persist_transition(
        self,
        previous: Workflow,
        updated: Workflow,
        now: datetime,
        actor: VoterReference | None = None,
    ) -> Workflow:
        """Version-guarded write of a computed transition, plus its audit row."""
        persisted = await self._workflows.update_status(updated, expected_version=previous.version)

        logger.info(
            f"Workflow {persisted.id} status changed: "
            f"{previous.status.value} -> {persisted.status.value} (v{persisted.version})"
        )
        self._audit.log_event(
            action=AuditAction.WORKFLOW_STATUS_CHANGED,
            resource_type="workflow",
            resource_id=persisted.id,
            created_at=now,
            actor=actor,
            details={
                "previous_status": previous.status.value,
                "new_status": persisted.status.value,
                "version": persisted.version,
            },
        )
        return persisted
