"""SQLAlchemy ORM Models for the approval ledger.

Rows are mapped to domain objects by the repositories, which re-validate them
on the way out. Spaces, groups, members and role assignments are owned by
other services; only the columns this engine reads are modelled here.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..domain import (
    EntityType,
    QuotaMetric,
    QuotaScope,
    VoteType,
    WorkflowStatus,
    WorkflowTemplateStatus,
)
from .base import Base, JSONType, TimestampMixin, UUIDMixin


def _enum(enum_cls: type, name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# SPACES, GROUPS & MEMBERSHIP
# =============================================================================


class Space(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "spaces"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    templates: Mapped[list["WorkflowTemplate"]] = relationship(back_populates="space")


class Group(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "groups"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    memberships: Mapped[list["GroupMembership"]] = relationship(back_populates="group")


class GroupMembership(Base, UUIDMixin, TimestampMixin):
    """A user or an agent belonging to a group."""

    __tablename__ = "group_memberships"

    group_id: Mapped[UUID] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    entity_type: Mapped[EntityType] = mapped_column(
        _enum(EntityType, "entity_type"), nullable=False
    )

    group: Mapped["Group"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "entity_id", "entity_type", name="uq_group_memberships_entity"),
        Index("idx_group_memberships_entity", "entity_id", "entity_type"),
    )


class RoleAssignment(Base, UUIDMixin, TimestampMixin):
    """Role bound to a user; only counted for the roles-per-user quota."""

    __tablename__ = "role_assignments"

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    role_name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "role_name", name="uq_role_assignments_user_role"),
    )


# =============================================================================
# TEMPLATES & WORKFLOWS
# =============================================================================


class WorkflowTemplate(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "workflow_templates"

    space_id: Mapped[UUID] = mapped_column(ForeignKey("spaces.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    approval_rule: Mapped[dict] = mapped_column(JSONType, nullable=False)
    status: Mapped[WorkflowTemplateStatus] = mapped_column(
        _enum(WorkflowTemplateStatus, "workflow_template_status"),
        default=WorkflowTemplateStatus.ACTIVE,
        nullable=False,
    )
    allow_voting_on_deprecated_template: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    default_expires_in_hours: Mapped[int | None] = mapped_column(Integer)

    space: Mapped["Space"] = relationship(back_populates="templates")
    workflows: Mapped[list["Workflow"]] = relationship(back_populates="template")

    __table_args__ = (
        Index("idx_workflow_templates_space", "space_id"),
    )


class Workflow(Base, UUIDMixin):
    """A workflow instance. ``version`` is the optimistic-concurrency token."""

    __tablename__ = "workflows"

    template_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow_templates.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[WorkflowStatus] = mapped_column(
        _enum(WorkflowStatus, "workflow_status"),
        default=WorkflowStatus.PENDING,
        nullable=False,
    )
    initiator_id: Mapped[UUID] = mapped_column(nullable=False)
    initiator_type: Mapped[EntityType] = mapped_column(
        _enum(EntityType, "entity_type"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    template: Mapped["WorkflowTemplate"] = relationship(back_populates="workflows")
    votes: Mapped[list["Vote"]] = relationship(back_populates="workflow")

    __table_args__ = (
        CheckConstraint("version >= 1", name="version_positive"),
        Index("idx_workflows_template_status", "template_id", "status"),
        Index("idx_workflows_status_expires", "status", "expires_at"),
    )


class Vote(Base, UUIDMixin):
    """Append-only vote event. Never updated or deleted."""

    __tablename__ = "votes"

    workflow_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflows.id"), nullable=False
    )
    voter_id: Mapped[UUID] = mapped_column(nullable=False)
    voter_type: Mapped[EntityType] = mapped_column(
        _enum(EntityType, "entity_type"), nullable=False
    )
    vote_type: Mapped[VoteType] = mapped_column(_enum(VoteType, "vote_type"), nullable=False)
    voted_for_groups: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(1024))
    casted_at: Mapped[datetime] = mapped_column(nullable=False)

    workflow: Mapped["Workflow"] = relationship(back_populates="votes")

    __table_args__ = (
        Index("idx_votes_workflow", "workflow_id"),
        Index("idx_votes_workflow_voter", "workflow_id", "voter_id", "voter_type", "casted_at"),
    )


# =============================================================================
# QUOTAS
# =============================================================================


class Quota(Base, UUIDMixin, TimestampMixin):
    """Limit for a scope/metric pair. ``version`` guards limit updates."""

    __tablename__ = "quotas"

    scope: Mapped[QuotaScope] = mapped_column(_enum(QuotaScope, "quota_scope"), nullable=False)
    metric: Mapped[QuotaMetric] = mapped_column(_enum(QuotaMetric, "quota_metric"), nullable=False)
    limit: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint("scope", "metric", name="uq_quotas_scope_metric"),
        CheckConstraint('"limit" >= 0', name="limit_non_negative"),
    )


# =============================================================================
# AUDIT
# =============================================================================


class AuditLog(Base, UUIDMixin):
    """Record of every workflow status change and quota update."""

    __tablename__ = "audit_logs"

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[UUID] = mapped_column(nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column()
    actor_type: Mapped[str | None] = mapped_column(String(20))
    details: Mapped[dict] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_logs_resource", "resource_type", "resource_id"),
    )
