"""Base schemas and common types for the Approval Ledger API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..domain import EntityType


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class LedgerBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


class EntityRef(LedgerBaseModel):
    """A user or agent taking part in a workflow."""

    entity_id: UUID
    entity_type: EntityType


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(LedgerBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(LedgerBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []
