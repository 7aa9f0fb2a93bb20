"""Persistence adapters. Each repository wraps one AsyncSession and never commits."""

from .groups import GroupMembershipRepository
from .quotas import QuotaRepository, UsageRepository
from .templates import WorkflowTemplateRepository
from .votes import VoteRepository
from .workflows import WorkflowRepository

__all__ = [
    "GroupMembershipRepository",
    "QuotaRepository",
    "UsageRepository",
    "VoteRepository",
    "WorkflowRepository",
    "WorkflowTemplateRepository",
]
