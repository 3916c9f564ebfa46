from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from src.api.routers.proposal_http_errors import raise_proposal_http_exception
from src.api.routers.proposals import get_proposal_workflow_service
from src.api.routers.runtime_utils import assert_support_apis_enabled
from src.core.proposals import AuditEntry, ProposalLifecycleError, ProposalWorkflowService

router = APIRouter(tags=["Proposal Audit"])


@router.get(
    "/api/audit",
    response_model=List[AuditEntry],
    status_code=status.HTTP_200_OK,
    summary="Get Audit Trail",
    description=(
        "Returns append-only audit entries in ascending id order, optionally restricted to one "
        "proposal. When a limit is applied and more entries remain, the X-Next-Cursor header "
        "carries the afterId for the next page."
    ),
)
def get_audit_trail(
    proposal_id: Annotated[
        Optional[int],
        Query(alias="proposalId", description="Proposal filter.", ge=1, examples=[1]),
    ] = None,
    limit: Annotated[
        Optional[int],
        Query(description="Page size.", ge=1, le=1000, examples=[50]),
    ] = None,
    after_id: Annotated[
        Optional[int],
        Query(alias="afterId", description="Return entries with id greater than this.", ge=0),
    ] = None,
    response: Response = None,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> List[AuditEntry]:
    assert_support_apis_enabled()
    try:
        trail = service.get_audit_trail(proposal_id=proposal_id, limit=limit, after_id=after_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
    if response is not None and trail.next_cursor is not None:
        response.headers["X-Next-Cursor"] = trail.next_cursor
    return trail.items
