"""Translation of engine errors into HTTP responses."""

import logging

from fastapi import HTTPException, status

from ..domain import (
    ApprovalLedgerError,
    AuthorizationError,
    ConcurrencyError,
    DataInconsistencyError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..schemas import ErrorResponse

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

_STATUS_BY_ERROR: list[tuple[type[ApprovalLedgerError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConcurrencyError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
]


def to_http_exception(error: ApprovalLedgerError) -> HTTPException:
    """
    Map an engine error to an HTTPException carrying an ErrorResponse body.

    Internal errors keep their detail in the logs only.
    """
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_cls):
            return HTTPException(
                status_code=status_code,
                detail=ErrorResponse(error=error.code, message=str(error)).model_dump(),
            )

    if isinstance(error, DataInconsistencyError):
        logger.error(f"Data inconsistency surfaced at the API boundary: {error}")
        code = error.code
    else:
        logger.exception(f"Unclassified engine error: {error}")
        code = "internal_error"

    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=ErrorResponse(error=code, message=GENERIC_ERROR_MESSAGE).model_dump(),
    )
