"""Audit trail of workflow status changes and quota updates."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain import VoterReference
from ..models import AuditLog


class AuditAction:
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_STATUS_CHANGED = "workflow_status_changed"
    VOTE_CAST = "vote_cast"
    TEMPLATE_DEPRECATED = "template_deprecated"
    QUOTA_CREATED = "quota_created"
    QUOTA_UPDATED = "quota_updated"


class AuditService:
    """Appends audit rows inside the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def log_event(
        self,
        action: str,
        resource_type: str,
        resource_id: UUID,
        created_at: datetime,
        actor: VoterReference | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._session.add(AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            actor_id=actor.entity_id if actor else None,
            actor_type=actor.entity_type.value if actor else None,
            details=details or {},
            created_at=created_at,
        ))
        # Don't flush here - let it be part of the transaction

    async def get_events(self, resource_type: str, resource_id: UUID) -> list[AuditLog]:
        """Audit rows of one resource, oldest first."""
        result = await self._session.execute(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.created_at.asc())
        )
        return list(result.scalars().all())
