"""Pydantic schemas for quotas."""

from datetime import datetime

from pydantic import Field

from ..domain import Quota
from .base import LedgerBaseModel


class QuotaResponse(LedgerBaseModel):
    scope: str
    metric: str
    limit: int
    version: int
    updated_at: datetime

    @classmethod
    def from_domain(cls, quota: Quota) -> "QuotaResponse":
        return cls(
            scope=quota.identifier.scope.value,
            metric=quota.identifier.metric.value,
            limit=quota.limit,
            version=quota.version,
            updated_at=quota.updated_at,
        )


class UpdateQuotaRequest(LedgerBaseModel):
    limit: int
    # Version last read by the client
    version: int = Field(..., ge=1)
