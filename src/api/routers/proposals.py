from typing import Annotated, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Path, Query, Response, status

from src.api.routers import proposals_config
from src.api.routers.proposal_http_errors import raise_proposal_http_exception
from src.api.routers.runtime_utils import (
    assert_lifecycle_enabled,
    assert_support_apis_enabled,
    env_flag,
    normalize_backend_init_error,
)
from src.core.proposals import (
    CustomApprovalChain,
    DefaultApprovalChain,
    Proposal,
    ProposalCreateRequest,
    ProposalLifecycleError,
    ProposalRepository,
    ProposalStepDecisionRequest,
    ProposalSubmitRequest,
    ProposalSupportabilityConfigResponse,
    ProposalWorkflowService,
)
from src.core.proposals.models import ProposalStatus

router = APIRouter(tags=["Proposal Workflow"])

_REPOSITORY: Optional[ProposalRepository] = None
_SERVICE: Optional[ProposalWorkflowService] = None


def get_proposal_repository() -> ProposalRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        try:
            _REPOSITORY = proposals_config.build_repository()
        except (RuntimeError, ValueError, OSError) as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=normalize_backend_init_error(
                    detail=str(exc),
                    required_detail="PROPOSAL_POSTGRES_DSN_REQUIRED",
                    fallback_detail="PROPOSAL_POSTGRES_CONNECTION_FAILED",
                ),
            ) from exc
    return _REPOSITORY


def get_proposal_workflow_service() -> ProposalWorkflowService:
    global _SERVICE
    if _SERVICE is None:
        repository = get_proposal_repository()
        try:
            default_chain = proposals_config.proposal_default_approval_chain()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            ) from exc
        _SERVICE = ProposalWorkflowService(
            repository=repository,
            default_chain=default_chain,
            lock_timeout_seconds=proposals_config.proposal_lock_timeout_seconds(),
            conflict_retries=proposals_config.proposal_conflict_retries(),
        )
    return _SERVICE


def reset_proposal_workflow_service_for_tests() -> None:
    global _REPOSITORY
    global _SERVICE
    _REPOSITORY = None
    _SERVICE = None


ProposalIdPath = Annotated[
    int,
    Path(description="Proposal identifier.", ge=1, examples=[1]),
]

ActorIdHeader = Annotated[
    Optional[str],
    Header(
        alias="X-Actor-Id",
        description="Optional requester identity recorded as the audit actor.",
        examples=["alice"],
    ),
]

SubmitBody = Annotated[
    Optional[Union[ProposalSubmitRequest, List[str]]],
    Body(
        description="Tagged approval chain selection, or a bare array of step names.",
        examples=[{"approvalChain": {"kind": "DEFAULT"}}, ["PEER_REVIEW", "RISK_REVIEW"]],
    ),
]


def _submit_request(
    payload: Optional[Union[ProposalSubmitRequest, List[str]]],
) -> Optional[ProposalSubmitRequest]:
    if not isinstance(payload, list):
        return payload
    if not payload:
        return ProposalSubmitRequest(approval_chain=DefaultApprovalChain())
    return ProposalSubmitRequest(approval_chain=CustomApprovalChain(step_names=payload))


@router.get(
    "/api/proposals/supportability/config",
    response_model=ProposalSupportabilityConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal Supportability Configuration",
    description=(
        "Returns proposal workflow runtime configuration and backend initialization status "
        "for operational diagnostics without direct database access."
    ),
)
def get_proposal_supportability_config() -> ProposalSupportabilityConfigResponse:
    assert_support_apis_enabled()
    init_error: Optional[str] = None
    try:
        proposals_config.build_repository()
    except RuntimeError as exc:
        init_error = str(exc)
    try:
        default_chain = list(proposals_config.proposal_default_approval_chain())
    except RuntimeError as exc:
        default_chain = []
        init_error = init_error or str(exc)

    return ProposalSupportabilityConfigResponse(
        store_backend=proposals_config.proposal_store_backend_name(),
        backend_ready=init_error is None,
        backend_init_error=init_error,
        lifecycle_enabled=env_flag("PROPOSAL_WORKFLOW_LIFECYCLE_ENABLED", True),
        support_apis_enabled=env_flag("PROPOSAL_SUPPORT_APIS_ENABLED", True),
        default_approval_chain=default_chain,
        lock_timeout_seconds=proposals_config.proposal_lock_timeout_seconds(),
        conflict_retries=proposals_config.proposal_conflict_retries(),
    )


@router.post(
    "/api/proposals",
    response_model=Proposal,
    status_code=status.HTTP_201_CREATED,
    summary="Create Proposal",
    description="Creates a DRAFT proposal with no approval steps and records PROPOSAL_CREATED.",
)
def create_proposal(
    payload: ProposalCreateRequest,
    actor_id: ActorIdHeader = None,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> Proposal:
    assert_lifecycle_enabled()
    try:
        return service.create_proposal(payload=payload, actor_id=actor_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.get(
    "/api/proposals",
    response_model=List[Proposal],
    status_code=status.HTTP_200_OK,
    summary="List Proposals",
    description=(
        "Lists proposals in ascending id order with an optional status filter. When a limit "
        "is applied and more proposals remain, the X-Next-Cursor header carries the cursor "
        "for the next page."
    ),
)
def list_proposals(
    status_filter: Annotated[
        Optional[ProposalStatus],
        Query(alias="status", description="Proposal status filter.", examples=["UNDER_REVIEW"]),
    ] = None,
    limit: Annotated[
        Optional[int],
        Query(description="Page size.", ge=1, le=500, examples=[20]),
    ] = None,
    cursor: Annotated[
        Optional[str],
        Query(description="X-Next-Cursor value from a previous page.", examples=["20"]),
    ] = None,
    response: Response = None,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> List[Proposal]:
    assert_lifecycle_enabled()
    try:
        page = service.list_proposals(status=status_filter, limit=limit, cursor=cursor)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
    if response is not None and page.next_cursor is not None:
        response.headers["X-Next-Cursor"] = page.next_cursor
    return page.items


@router.get(
    "/api/proposals/{proposal_id}",
    response_model=Proposal,
    status_code=status.HTTP_200_OK,
    summary="Get Proposal",
    description="Returns the proposal with its ordered approval steps.",
)
def get_proposal(
    proposal_id: ProposalIdPath,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> Proposal:
    assert_lifecycle_enabled()
    try:
        return service.get_proposal(proposal_id=proposal_id)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.post(
    "/api/proposals/{proposal_id}/submit",
    response_model=Proposal,
    status_code=status.HTTP_200_OK,
    summary="Submit Proposal For Review",
    description=(
        "Moves a DRAFT proposal to UNDER_REVIEW and materializes its approval steps from the "
        "selected chain. The body is optional; omitting it or sending an empty array selects "
        "the default chain. A bare array of step names is shorthand for a CUSTOM chain."
    ),
)
def submit_proposal(
    proposal_id: ProposalIdPath,
    payload: SubmitBody = None,
    actor_id: ActorIdHeader = None,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> Proposal:
    assert_lifecycle_enabled()
    try:
        return service.submit_proposal(
            proposal_id=proposal_id,
            payload=_submit_request(payload),
            actor_id=actor_id,
        )
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.post(
    "/api/proposals/{proposal_id}/approve",
    response_model=Proposal,
    status_code=status.HTTP_200_OK,
    summary="Approve Current Step",
    description=(
        "Approves the current PENDING step. Approving the last step finalizes the proposal "
        "as APPROVED."
    ),
)
def approve_step(
    proposal_id: ProposalIdPath,
    payload: ProposalStepDecisionRequest,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> Proposal:
    assert_lifecycle_enabled()
    try:
        return service.approve_step(proposal_id=proposal_id, payload=payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)


@router.post(
    "/api/proposals/{proposal_id}/reject",
    response_model=Proposal,
    status_code=status.HTTP_200_OK,
    summary="Reject Proposal",
    description=(
        "Rejects the current step and the proposal. Comments are required. Later steps stay "
        "PENDING."
    ),
)
def reject_proposal(
    proposal_id: ProposalIdPath,
    payload: ProposalStepDecisionRequest,
    service: Annotated[ProposalWorkflowService, Depends(get_proposal_workflow_service)] = None,
) -> Proposal:
    assert_lifecycle_enabled()
    try:
        return service.reject_proposal(proposal_id=proposal_id, payload=payload)
    except ProposalLifecycleError as exc:
        raise_proposal_http_exception(exc)
