"""
Quota guard.

Answers "may one more X be created?" for every bounded resource. The check
and the creation it guards are separate statements: two concurrent creators
can both see usage under the limit and both succeed, overshooting the cap by
a small margin. Storage enforces no count constraint, so this race is a known
limitation rather than something patched over with locks.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..domain import (
    Quota,
    QuotaFactory,
    QuotaIdentifier,
    QuotaMetric,
    QuotaNotFoundError,
    QuotaValidationError,
)
from ..repositories import QuotaRepository, UsageRepository
from .audit import AuditAction, AuditService

logger = logging.getLogger(__name__)


class QuotaService:
    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self._quotas = QuotaRepository(session)
        self._usage = UsageRepository(session)
        self._audit = AuditService(session)
        self._clock = clock

    # =========================================================================
    # CHECK
    # =========================================================================

    async def check_quota(self, identifier: QuotaIdentifier, target_id: UUID | None = None) -> bool:
        """
        Whether one more unit of ``identifier`` is available.

        Args:
            identifier: the scope/metric pair being checked
            target_id: the space, user, group or template the usage is
                counted for; required for every scope but GLOBAL

        Returns:
            True when no quota is defined or usage is below the limit
        """
        if not identifier.is_global and target_id is None:
            raise QuotaValidationError("quota_target_required")

        try:
            quota = await self._quotas.get_quota(identifier)
        except QuotaNotFoundError:
            return True

        usage = await self.get_usage(identifier, target_id)
        if not quota.allows(usage):
            logger.info(f"Quota {identifier} reached for {target_id or 'global'}: {usage}/{quota.limit}")
            return False
        return True

    async def get_usage(self, identifier: QuotaIdentifier, target_id: UUID | None = None) -> int:
        metric = identifier.metric
        if metric is QuotaMetric.MAX_GROUPS:
            return await self._usage.count_groups()
        if metric is QuotaMetric.MAX_SPACES:
            return await self._usage.count_spaces()
        if metric is QuotaMetric.MAX_TEMPLATES:
            return await self._usage.count_templates_by_space(target_id)
        if metric is QuotaMetric.MAX_ENTITIES_PER_GROUP:
            return await self._usage.count_group_members(target_id)
        if metric is QuotaMetric.MAX_ROLES_PER_USER:
            return await self._usage.count_roles_by_user(target_id)
        if metric is QuotaMetric.MAX_CONCURRENT_WORKFLOWS:
            return await self._usage.count_pending_workflows_by_template(target_id)
        raise QuotaValidationError("quota_invalid_metric")

    # =========================================================================
    # MANAGEMENT
    # =========================================================================

    async def get_quota(self, identifier: QuotaIdentifier) -> Quota:
        return await self._quotas.get_quota(identifier)

    async def create_quota(self, identifier: QuotaIdentifier, limit: int) -> Quota:
        now = self._clock()
        quota = await self._quotas.create_quota(QuotaFactory.new_quota(identifier, limit, now))
        self._audit.log_event(
            action=AuditAction.QUOTA_CREATED,
            resource_type="quota",
            resource_id=quota.id,
            created_at=now,
            details={"identifier": str(identifier), "limit": quota.limit},
        )
        return quota

    async def update_quota_limit(
        self,
        identifier: QuotaIdentifier,
        limit: int,
        expected_version: int,
    ) -> Quota:
        """
        Change a quota's limit, presenting the version last read.

        Raises:
            QuotaNotFoundError: no quota for ``identifier``
            QuotaValidationError: ``limit`` is not a non-negative integer
            ConcurrencyError: the quota changed since ``expected_version``
        """
        now = self._clock()
        current = await self._quotas.get_quota(identifier)
        updated = await self._quotas.update_quota(
            QuotaFactory.with_limit(current, limit, now),
            expected_version=expected_version,
        )

        logger.info(f"Quota {identifier} limit changed from {current.limit} to {updated.limit}")
        self._audit.log_event(
            action=AuditAction.QUOTA_UPDATED,
            resource_type="quota",
            resource_id=updated.id,
            created_at=now,
            details={
                "identifier": str(identifier),
                "previous_limit": current.limit,
                "new_limit": updated.limit,
                "version": updated.version,
            },
        )
        return updated
