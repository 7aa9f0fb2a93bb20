"""Quotas bounding how many resources may exist per scope."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from .errors import QuotaValidationError


class QuotaScope(str, Enum):
    GLOBAL = "GLOBAL"
    SPACE = "SPACE"
    USER = "USER"
    GROUP = "GROUP"
    TEMPLATE = "TEMPLATE"


class QuotaMetric(str, Enum):
    MAX_GROUPS = "MAX_GROUPS"
    MAX_SPACES = "MAX_SPACES"
    MAX_TEMPLATES = "MAX_TEMPLATES"
    MAX_ROLES_PER_USER = "MAX_ROLES_PER_USER"
    MAX_ENTITIES_PER_GROUP = "MAX_ENTITIES_PER_GROUP"
    MAX_CONCURRENT_WORKFLOWS = "MAX_CONCURRENT_WORKFLOWS"


METRICS_BY_SCOPE: dict[QuotaScope, tuple[QuotaMetric, ...]] = {
    QuotaScope.GLOBAL: (QuotaMetric.MAX_GROUPS, QuotaMetric.MAX_SPACES),
    QuotaScope.SPACE: (QuotaMetric.MAX_TEMPLATES,),
    QuotaScope.USER: (QuotaMetric.MAX_ROLES_PER_USER,),
    QuotaScope.GROUP: (QuotaMetric.MAX_ENTITIES_PER_GROUP,),
    QuotaScope.TEMPLATE: (QuotaMetric.MAX_CONCURRENT_WORKFLOWS,),
}


@dataclass(frozen=True)
class QuotaIdentifier:
    scope: QuotaScope
    metric: QuotaMetric

    @classmethod
    def of(cls, scope: Any, metric: Any) -> "QuotaIdentifier":
        """Build an identifier from raw values, checking the metric fits the scope."""
        try:
            scope = QuotaScope(scope)
        except ValueError:
            raise QuotaValidationError("quota_invalid_scope")
        try:
            metric = QuotaMetric(metric)
        except ValueError:
            raise QuotaValidationError("quota_invalid_metric")
        if metric not in METRICS_BY_SCOPE[scope]:
            raise QuotaValidationError("quota_invalid_metric")
        return cls(scope=scope, metric=metric)

    @property
    def is_global(self) -> bool:
        return self.scope is QuotaScope.GLOBAL

    def __str__(self) -> str:
        return f"{self.scope.value}/{self.metric.value}"


@dataclass(frozen=True)
class Quota:
    id: UUID
    identifier: QuotaIdentifier
    limit: int
    version: int
    created_at: datetime
    updated_at: datetime

    def allows(self, usage: int) -> bool:
        """True when one more unit fits under the limit."""
        return usage < self.limit


def validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise QuotaValidationError("quota_invalid_limit")
    return limit


class QuotaFactory:
    @staticmethod
    def new_quota(identifier: QuotaIdentifier, limit: Any, now: datetime) -> Quota:
        return Quota(
            id=uuid4(),
            identifier=identifier,
            limit=validate_limit(limit),
            version=1,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def with_limit(quota: Quota, limit: Any, now: datetime) -> Quota:
        return replace(quota, limit=validate_limit(limit), updated_at=now)
