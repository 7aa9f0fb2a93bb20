"""Pydantic schemas for API request/response validation."""

from .base import EntityRef, ErrorDetail, ErrorResponse, LedgerBaseModel
from .quotas import QuotaResponse, UpdateQuotaRequest
from .workflows import (
    CancelWorkflowsResponse,
    CanVoteResponse,
    CastVoteRequest,
    CastVoteResponse,
    VoteResponse,
    WorkflowResponse,
)

__all__ = [
    "LedgerBaseModel",
    "EntityRef",
    "ErrorDetail",
    "ErrorResponse",
    "WorkflowResponse",
    "VoteResponse",
    "CastVoteRequest",
    "CastVoteResponse",
    "CanVoteResponse",
    "CancelWorkflowsResponse",
    "QuotaResponse",
    "UpdateQuotaRequest",
]
