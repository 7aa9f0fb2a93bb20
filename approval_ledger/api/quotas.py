"""API routes for reading and adjusting quotas."""

from fastapi import APIRouter

from ..domain import ApprovalLedgerError, QuotaIdentifier
from ..schemas import QuotaResponse, UpdateQuotaRequest
from .deps import QuotaServiceDep
from .errors import to_http_exception

router = APIRouter(prefix="/quotas", tags=["quotas"])


@router.get("/{scope}/{metric}", response_model=QuotaResponse)
async def get_quota(scope: str, metric: str, quotas: QuotaServiceDep) -> QuotaResponse:
    try:
        quota = await quotas.get_quota(QuotaIdentifier.of(scope.upper(), metric.upper()))
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return QuotaResponse.from_domain(quota)


@router.put("/{scope}/{metric}", response_model=QuotaResponse)
async def update_quota(
    scope: str,
    metric: str,
    data: UpdateQuotaRequest,
    quotas: QuotaServiceDep,
) -> QuotaResponse:
    """Change a quota's limit. ``version`` must be the one last read, else 409."""
    try:
        quota = await quotas.update_quota_limit(
            QuotaIdentifier.of(scope.upper(), metric.upper()),
            limit=data.limit,
            expected_version=data.version,
        )
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return QuotaResponse.from_domain(quota)
