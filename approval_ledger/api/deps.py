"""FastAPI dependencies: session, services and the requesting entity."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core import get_session, get_settings
from ..domain import EntityType, VoterReference
from ..schemas import ErrorResponse
from ..services import (
    EngineConfig,
    QuotaService,
    VoteService,
    WorkflowService,
    WorkflowTemplateService,
)

SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings(get_settings())


EngineConfigDep = Annotated[EngineConfig, Depends(get_engine_config)]


async def get_requestor(
    x_entity_id: Annotated[str | None, Header()] = None,
    x_entity_type: Annotated[str | None, Header()] = None,
) -> VoterReference:
    """
    The user or agent making the request.

    Both headers are set by the gateway after it verified the caller's token.
    """
    if not x_entity_id or not x_entity_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorResponse(
                error="missing_requestor",
                message="X-Entity-Id and X-Entity-Type headers are required",
            ).model_dump(),
        )
    try:
        return VoterReference(
            entity_id=UUID(x_entity_id),
            entity_type=EntityType(x_entity_type.lower()),
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error="invalid_requestor",
                message="X-Entity-Id must be a UUID and X-Entity-Type one of user, agent",
            ).model_dump(),
        )


RequestorDep = Annotated[VoterReference, Depends(get_requestor)]


def get_vote_service(session: SessionDep, config: EngineConfigDep) -> VoteService:
    return VoteService(session, config=config)


def get_workflow_service(session: SessionDep, config: EngineConfigDep) -> WorkflowService:
    return WorkflowService(session, config=config)


def get_template_service(session: SessionDep, config: EngineConfigDep) -> WorkflowTemplateService:
    return WorkflowTemplateService(session, config=config)


def get_quota_service(session: SessionDep) -> QuotaService:
    return QuotaService(session)


VoteServiceDep = Annotated[VoteService, Depends(get_vote_service)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
TemplateServiceDep = Annotated[WorkflowTemplateService, Depends(get_template_service)]
QuotaServiceDep = Annotated[QuotaService, Depends(get_quota_service)]
