"""SQLAlchemy ORM Models for the approval ledger."""

from .base import Base, JSONType, TimestampMixin, UTCDateTime, UUIDMixin
from .models import (
    # Audit
    AuditLog,
    # Spaces, groups & membership
    Group,
    GroupMembership,
    # Quotas
    Quota,
    RoleAssignment,
    Space,
    # Votes & workflows
    Vote,
    Workflow,
    WorkflowTemplate,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "UTCDateTime",
    "JSONType",
    # Spaces, groups & membership
    "Space",
    "Group",
    "GroupMembership",
    "RoleAssignment",
    # Workflows
    "WorkflowTemplate",
    "Workflow",
    "Vote",
    # Quotas
    "Quota",
    # Audit
    "AuditLog",
]
