from typing import NoReturn

from fastapi import HTTPException, status

from src.core.proposals import (
    ProposalConcurrencyError,
    ProposalInvalidStateError,
    ProposalNotFoundError,
    ProposalStorageError,
    ProposalValidationError,
)

# Starlette renamed 422 to UNPROCESSABLE_CONTENT; keep the older name working.
HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_proposal_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ProposalNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (ProposalInvalidStateError, ProposalConcurrencyError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ProposalValidationError):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail=str(exc),
        ) from exc
    if isinstance(exc, ProposalStorageError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    raise exc
