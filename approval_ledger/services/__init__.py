"""Application services. Each one wraps a session and composes repositories with domain logic."""

from .audit import AuditAction, AuditService
from .config import DEFAULT_CONFIG, EngineConfig
from .quotas import QuotaService
from .templates import CancellationReport, WorkflowTemplateService
from .votes import CanVoteResult, CastVoteResult, VoteService, VoteStatus
from .workflows import CreateWorkflowInput, RecalculationResult, WorkflowService

__all__ = [
    "AuditAction",
    "AuditService",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "QuotaService",
    "WorkflowTemplateService",
    "CancellationReport",
    "VoteService",
    "VoteStatus",
    "CanVoteResult",
    "CastVoteResult",
    "WorkflowService",
    "CreateWorkflowInput",
    "RecalculationResult",
]
