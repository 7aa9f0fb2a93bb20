"""
Workflow template lifecycle.

Deprecating a template with cancellation is a two step operation:
1. mark_for_deprecation() moves it to PENDING_DEPRECATION and stops voting
2. cancel_workflows_and_deprecate_template() cancels its pending workflows
   and, once none are left, marks it DEPRECATED

Step 2 is driven by an internal endpoint and may be re-run safely.
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..domain import (
    ApprovalRuleFactory,
    ConcurrencyError,
    MaxAttemptsExceededError,
    QuotaIdentifier,
    QuotaMetric,
    QuotaScope,
    TerminalStateError,
    ValidationError,
    WorkflowTemplate,
    WorkflowTemplateStateError,
    WorkflowTemplateStatus,
    cancel,
    mark_template_as_deprecated,
    mark_template_for_deprecation,
)
from ..repositories import WorkflowRepository, WorkflowTemplateRepository
from .audit import AuditAction, AuditService
from .config import DEFAULT_CONFIG, EngineConfig
from .quotas import QuotaService

logger = logging.getLogger(__name__)


@dataclass
class CancellationReport:
    """What a bulk cancellation did before the template was deprecated."""
    template: WorkflowTemplate
    canceled_workflow_ids: list[UUID] = field(default_factory=list)
    attempts: int = 0


class WorkflowTemplateService:
    def __init__(
        self,
        session: AsyncSession,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Clock = utc_now,
    ):
        self._config = config
        self._clock = clock
        self._templates = WorkflowTemplateRepository(
            session, max_rule_nesting_depth=config.max_rule_nesting_depth
        )
        self._workflows = WorkflowRepository(session)
        self._quotas = QuotaService(session, clock=clock)
        self._audit = AuditService(session)

    async def get_template(self, template_id: UUID) -> WorkflowTemplate:
        return await self._templates.get_template_by_id(template_id)

    async def create_template(
        self,
        space_id: UUID,
        name: str,
        approval_rule: Any,
        description: str | None = None,
        default_expires_in_hours: int | None = None,
    ) -> WorkflowTemplate:
        """
        Create an active template from a raw approval rule.

        Raises:
            ApprovalRuleValidationError: the rule is malformed or nested too deep
            ValidationError: the space already holds its maximum of templates
        """
        rule = ApprovalRuleFactory.validate(
            approval_rule, max_depth=self._config.max_rule_nesting_depth
        )

        identifier = QuotaIdentifier(QuotaScope.SPACE, QuotaMetric.MAX_TEMPLATES)
        if not await self._quotas.check_quota(identifier, target_id=space_id):
            raise ValidationError("max_templates_reached")

        now = self._clock()
        return await self._templates.create_template(WorkflowTemplate(
            id=uuid4(),
            name=name,
            space_id=space_id,
            description=description,
            approval_rule=rule,
            status=WorkflowTemplateStatus.ACTIVE,
            default_expires_in_hours=default_expires_in_hours,
            created_at=now,
            updated_at=now,
        ))

    async def mark_for_deprecation(self, template_id: UUID, cancel_workflows: bool) -> WorkflowTemplate:
        """
        Start deprecating an active template.

        Without ``cancel_workflows`` the template is deprecated straight away
        and its pending workflows keep collecting votes.
        """
        template = await self._templates.get_template_by_id(template_id)
        now = self._clock()
        template = mark_template_for_deprecation(template, cancel_workflows, now)
        if not cancel_workflows:
            template = mark_template_as_deprecated(template, now)
        return await self._templates.update_lifecycle(template)

    async def cancel_workflows_and_deprecate_template(self, template_id: UUID) -> CancellationReport:
        """
        Cancel every pending workflow of a template pending deprecation,
        then mark the template DEPRECATED.

        Each pass re-reads the pending workflows and cancels them with a
        version-guarded write. Workflows closed by someone else in the
        meantime are skipped; lost races are retried on the next pass.

        Raises:
            WorkflowTemplateStateError: the template is not pending deprecation
            MaxAttemptsExceededError: pending workflows remained after
                ``cancel_workflows_max_attempts`` passes
        """
        template = await self._templates.get_template_by_id(template_id)
        if template.status is not WorkflowTemplateStatus.PENDING_DEPRECATION:
            raise WorkflowTemplateStateError("workflow_template_not_pending_deprecation")

        report = CancellationReport(template=template)
        max_attempts = self._config.cancel_workflows_max_attempts

        for attempt in range(1, max_attempts + 1):
            report.attempts = attempt
            pending = await self._workflows.list_pending_by_template(template_id)
            conflicts = 0

            for workflow in pending:
                now = self._clock()
                try:
                    canceled = await self._workflows.update_status(
                        cancel(workflow, now), expected_version=workflow.version
                    )
                except TerminalStateError:
                    continue
                except ConcurrencyError:
                    conflicts += 1
                    continue

                report.canceled_workflow_ids.append(canceled.id)
                self._audit.log_event(
                    action=AuditAction.WORKFLOW_STATUS_CHANGED,
                    resource_type="workflow",
                    resource_id=canceled.id,
                    created_at=now,
                    details={
                        "previous_status": workflow.status.value,
                        "new_status": canceled.status.value,
                        "version": canceled.version,
                        "template_id": str(template_id),
                    },
                )

            if conflicts == 0:
                now = self._clock()
                report.template = await self._templates.update_lifecycle(
                    mark_template_as_deprecated(template, now)
                )
                self._audit.log_event(
                    action=AuditAction.TEMPLATE_DEPRECATED,
                    resource_type="workflow_template",
                    resource_id=template_id,
                    created_at=now,
                    details={"canceled_workflows": len(report.canceled_workflow_ids)},
                )
                logger.info(
                    f"Template {template_id} deprecated after canceling "
                    f"{len(report.canceled_workflow_ids)} workflows in {attempt} attempt(s)"
                )
                return report

            logger.warning(
                f"{conflicts} workflows of template {template_id} changed concurrently, "
                f"retrying ({attempt}/{max_attempts})"
            )

        logger.error(
            f"Pending workflows of template {template_id} still changing "
            f"after {max_attempts} attempts"
        )
        raise MaxAttemptsExceededError()
