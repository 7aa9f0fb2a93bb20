"""
Workflow persistence with optimistic concurrency control.

Status changes are compare-and-swap writes: the UPDATE only matches the row
if its ``version`` still equals the version the caller read, and bumps it in
the same statement. There is no read-modify-write path.
"""

import logging
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import (
    ConcurrencyError,
    InvalidStateError,
    VoterReference,
    Workflow,
    WorkflowNotFoundError,
    WorkflowStatus,
)
from ..models import Workflow as WorkflowRow

logger = logging.getLogger(__name__)


class WorkflowRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        row = WorkflowRow(
            id=workflow.id,
            template_id=workflow.template_id,
            name=workflow.name,
            description=workflow.description,
            status=workflow.status,
            initiator_id=workflow.initiator.entity_id,
            initiator_type=workflow.initiator.entity_type,
            expires_at=workflow.expires_at,
            version=workflow.version,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as e:
            logger.error(f"Error creating workflow {workflow.name}: {e}")
            raise InvalidStateError("workflow_already_exists")
        return workflow

    async def get_workflow_by_id(self, workflow_id: UUID) -> Workflow:
        result = await self._session.execute(
            select(WorkflowRow)
            .where(WorkflowRow.id == workflow_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if not row:
            raise WorkflowNotFoundError(message=f"Workflow {workflow_id} not found")
        return _to_domain(row)

    async def update_status(self, workflow: Workflow, expected_version: int) -> Workflow:
        """
        Persist ``workflow.status`` if nobody committed a change since
        ``expected_version`` was read.

        Returns:
            The workflow carrying its new version (expected_version + 1)

        Raises:
            ConcurrencyError: the stored version moved on
            WorkflowNotFoundError: the workflow does not exist
        """
        result = await self._session.execute(
            update(WorkflowRow)
            .where(
                WorkflowRow.id == workflow.id,
                WorkflowRow.version == expected_version,
            )
            .values(
                status=workflow.status,
                updated_at=workflow.updated_at,
                version=WorkflowRow.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current_version = await self._session.scalar(
                select(WorkflowRow.version).where(WorkflowRow.id == workflow.id)
            )
            if current_version is None:
                raise WorkflowNotFoundError(message=f"Workflow {workflow.id} not found")
            logger.warning(
                f"Version mismatch on workflow {workflow.id}: "
                f"expected v{expected_version}, stored v{current_version}"
            )
            raise ConcurrencyError(
                message=(
                    f"Version mismatch: expected v{expected_version}, "
                    f"but current is v{current_version}"
                )
            )

        return replace(workflow, version=expected_version + 1)

    async def list_pending_by_template(self, template_id: UUID) -> list[Workflow]:
        result = await self._session.execute(
            select(WorkflowRow)
            .where(
                WorkflowRow.template_id == template_id,
                WorkflowRow.status == WorkflowStatus.PENDING,
            )
            .order_by(WorkflowRow.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [_to_domain(row) for row in result.scalars().all()]

    async def list_due_for_expiry(self, now: datetime, limit: int = 500) -> list[Workflow]:
        result = await self._session.execute(
            select(WorkflowRow)
            .where(
                WorkflowRow.status == WorkflowStatus.PENDING,
                WorkflowRow.expires_at <= now,
            )
            .order_by(WorkflowRow.expires_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [_to_domain(row) for row in result.scalars().all()]


def _to_domain(row: WorkflowRow) -> Workflow:
    return Workflow(
        id=row.id,
        template_id=row.template_id,
        name=row.name,
        description=row.description,
        status=WorkflowStatus(row.status),
        initiator=VoterReference(entity_id=row.initiator_id, entity_type=row.initiator_type),
        expires_at=row.expires_at,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
