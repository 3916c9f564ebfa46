"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers import proposals_config
from src.api.routers.audit import router as proposal_audit_router
from src.api.routers.proposals import get_proposal_repository
from src.api.routers.proposals import router as proposal_workflow_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    logger.info(
        "application.started",
        extra={
            "extra_fields": {
                "store_backend": proposals_config.proposal_store_backend_name(),
                "default_approval_chain": list(
                    proposals_config.proposal_default_approval_chain()
                ),
            }
        },
    )
    yield


app = FastAPI(
    title="Investment Proposal Approval Workflow API",
    version="0.1.0",
    description=(
        "Investment proposal intake and multi-step approval workflow.\n\n"
        "Proposals move `DRAFT` -> `UNDER_REVIEW` -> `APPROVED` or `REJECTED`. Every state "
        "change is recorded in an append-only audit trail."
    ),
    openapi_tags=[
        {
            "name": "Proposal Workflow",
            "description": "Proposal creation, submission, and step decision endpoints.",
        },
        {
            "name": "Proposal Audit",
            "description": "Append-only audit trail retrieval.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)

app.include_router(proposal_workflow_router)
app.include_router(proposal_audit_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"], summary="Service Health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/live", tags=["Health"], summary="Liveness Probe")
def health_live() -> dict[str, str]:
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"], summary="Readiness Probe")
def health_ready() -> JSONResponse:
    try:
        get_proposal_repository()
    except HTTPException as exc:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "detail": exc.detail},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ready"})
