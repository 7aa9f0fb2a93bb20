"""Quota rows and the usage counters they are checked against."""

import logging
from dataclasses import replace
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import (
    ConcurrencyError,
    EntityType,
    Quota,
    QuotaAlreadyExistsError,
    QuotaIdentifier,
    QuotaNotFoundError,
    QuotaValidationError,
    WorkflowStatus,
)
from ..domain.quotas import validate_limit
from ..models import Group, GroupMembership, RoleAssignment, Space, Workflow, WorkflowTemplate
from ..models import Quota as QuotaRow
from .base import data_inconsistency

logger = logging.getLogger(__name__)


class QuotaRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_quota(self, identifier: QuotaIdentifier) -> Quota:
        row = await self._get_row(identifier)
        if not row:
            raise QuotaNotFoundError(message=f"No quota defined for {identifier}")
        return _to_domain(row)

    async def create_quota(self, quota: Quota) -> Quota:
        if await self._get_row(quota.identifier):
            raise QuotaAlreadyExistsError()

        self._session.add(QuotaRow(
            id=quota.id,
            scope=quota.identifier.scope,
            metric=quota.identifier.metric,
            limit=quota.limit,
            version=quota.version,
            created_at=quota.created_at,
            updated_at=quota.updated_at,
        ))
        try:
            await self._session.flush()
        except IntegrityError:
            # Lost the race against a concurrent create of the same scope/metric
            raise QuotaAlreadyExistsError()
        return quota

    async def update_quota(self, quota: Quota, expected_version: int) -> Quota:
        """Version-guarded update of a quota limit."""
        result = await self._session.execute(
            update(QuotaRow)
            .where(
                QuotaRow.scope == quota.identifier.scope,
                QuotaRow.metric == quota.identifier.metric,
                QuotaRow.version == expected_version,
            )
            .values(
                limit=quota.limit,
                updated_at=quota.updated_at,
                version=QuotaRow.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            existing = await self._get_row(quota.identifier)
            if not existing:
                raise QuotaNotFoundError(message=f"No quota defined for {quota.identifier}")
            logger.warning(
                f"Version mismatch on quota {quota.identifier}: "
                f"expected v{expected_version}, stored v{existing.version}"
            )
            raise ConcurrencyError(
                message=f"Quota {quota.identifier} was modified concurrently"
            )

        return replace(quota, version=expected_version + 1)

    async def _get_row(self, identifier: QuotaIdentifier) -> QuotaRow | None:
        result = await self._session.execute(
            select(QuotaRow)
            .where(
                QuotaRow.scope == identifier.scope,
                QuotaRow.metric == identifier.metric,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


def _to_domain(row: QuotaRow) -> Quota:
    try:
        identifier = QuotaIdentifier.of(row.scope, row.metric)
        limit = validate_limit(row.limit)
    except QuotaValidationError as e:
        raise data_inconsistency("quota", row.id, e)

    return Quota(
        id=row.id,
        identifier=identifier,
        limit=limit,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at or row.created_at,
    )


class UsageRepository:
    """Current usage of every bounded resource."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def count_groups(self) -> int:
        return await self._count(select(func.count()).select_from(Group))

    async def count_spaces(self) -> int:
        return await self._count(select(func.count()).select_from(Space))

    async def count_templates_by_space(self, space_id: UUID) -> int:
        return await self._count(
            select(func.count()).select_from(WorkflowTemplate).where(
                WorkflowTemplate.space_id == space_id
            )
        )

    async def count_group_members(self, group_id: UUID) -> int:
        """Users and agents together."""
        return await self._count(
            select(func.count()).select_from(GroupMembership).where(
                GroupMembership.group_id == group_id,
                GroupMembership.entity_type.in_([EntityType.USER, EntityType.AGENT]),
            )
        )

    async def count_roles_by_user(self, user_id: UUID) -> int:
        # Unknown users (e.g. being created right now) have no roles yet
        return await self._count(
            select(func.count()).select_from(RoleAssignment).where(
                RoleAssignment.user_id == user_id
            )
        )

    async def count_pending_workflows_by_template(self, template_id: UUID) -> int:
        return await self._count(
            select(func.count()).select_from(Workflow).where(
                Workflow.template_id == template_id,
                Workflow.status == WorkflowStatus.PENDING,
            )
        )

    async def _count(self, query) -> int:
        result = await self._session.execute(query)
        return result.scalar_one()
