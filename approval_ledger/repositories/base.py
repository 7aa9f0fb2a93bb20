"""Helpers shared by the repositories."""

import logging
from uuid import UUID

from ..domain import ApprovalLedgerError, DataInconsistencyError

logger = logging.getLogger(__name__)


def data_inconsistency(resource: str, resource_id: UUID, error: ApprovalLedgerError) -> DataInconsistencyError:
    """Log a stored row that no longer validates and return a generic error.

    The detail stays in the logs; callers only ever see the generic code.
    """
    logger.error(
        f"Stored {resource} {resource_id} failed validation ({error.code}), "
        "possible schema drift or corrupted row"
    )
    return DataInconsistencyError(message=f"Internal data inconsistency for {resource}")
