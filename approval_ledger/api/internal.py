"""Internal API routes, called by background workers rather than end users."""

from uuid import UUID

from fastapi import APIRouter

from ..domain import ApprovalLedgerError
from ..schemas import CancelWorkflowsResponse
from .deps import TemplateServiceDep
from .errors import to_http_exception

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post(
    "/workflow-templates/{template_id}/cancel-workflows",
    response_model=CancelWorkflowsResponse,
)
async def cancel_workflows_and_deprecate_template(
    template_id: UUID,
    templates: TemplateServiceDep,
) -> CancelWorkflowsResponse:
    """Cancel the pending workflows of a template pending deprecation, then deprecate it."""
    try:
        report = await templates.cancel_workflows_and_deprecate_template(template_id)
    except ApprovalLedgerError as e:
        raise to_http_exception(e)
    return CancelWorkflowsResponse.from_report(report)
