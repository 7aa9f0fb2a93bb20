"""Workflow template reads and lifecycle updates."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import (
    ApprovalRuleFactory,
    ApprovalRuleValidationError,
    WorkflowTemplate,
    WorkflowTemplateNotFoundError,
    WorkflowTemplateStatus,
    rule_to_dict,
)
from ..models import WorkflowTemplate as WorkflowTemplateRow
from .base import data_inconsistency


class WorkflowTemplateRepository:
    def __init__(self, session: AsyncSession, max_rule_nesting_depth: int = 2):
        self._session = session
        self._max_rule_nesting_depth = max_rule_nesting_depth

    async def get_template_by_id(self, template_id: UUID) -> WorkflowTemplate:
        row = await self._get_row(template_id)
        return self._to_domain(row)

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        self._session.add(WorkflowTemplateRow(
            id=template.id,
            space_id=template.space_id,
            name=template.name,
            description=template.description,
            approval_rule=rule_to_dict(template.approval_rule),
            status=template.status,
            allow_voting_on_deprecated_template=template.allow_voting_on_deprecated_template,
            default_expires_in_hours=template.default_expires_in_hours,
            created_at=template.created_at,
            updated_at=template.updated_at,
        ))
        await self._session.flush()
        return template

    async def update_lifecycle(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist status and voting flag changes of a template."""
        row = await self._get_row(template.id)
        row.status = template.status
        row.allow_voting_on_deprecated_template = template.allow_voting_on_deprecated_template
        row.updated_at = template.updated_at
        await self._session.flush()
        return template

    async def _get_row(self, template_id: UUID) -> WorkflowTemplateRow:
        result = await self._session.execute(
            select(WorkflowTemplateRow)
            .where(WorkflowTemplateRow.id == template_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if not row:
            raise WorkflowTemplateNotFoundError(message=f"Workflow template {template_id} not found")
        return row

    def _to_domain(self, row: WorkflowTemplateRow) -> WorkflowTemplate:
        try:
            rule = ApprovalRuleFactory.validate(
                row.approval_rule, max_depth=self._max_rule_nesting_depth
            )
        except ApprovalRuleValidationError as e:
            raise data_inconsistency("workflow template", row.id, e)

        return WorkflowTemplate(
            id=row.id,
            name=row.name,
            space_id=row.space_id,
            description=row.description,
            approval_rule=rule,
            status=WorkflowTemplateStatus(row.status),
            allow_voting_on_deprecated_template=row.allow_voting_on_deprecated_template,
            default_expires_in_hours=row.default_expires_in_hours,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
