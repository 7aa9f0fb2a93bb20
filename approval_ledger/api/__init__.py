"""API routes for Approval Ledger."""

from fastapi import APIRouter

from .internal import router as internal_router
from .quotas import router as quotas_router
from .workflows import router as workflows_router

# Main API router
api_router = APIRouter()

api_router.include_router(workflows_router)
api_router.include_router(quotas_router)
api_router.include_router(internal_router)

__all__ = ["api_router"]
