import pytest
from fastapi import HTTPException

from src.api.routers.proposal_http_errors import (
    HTTP_422_UNPROCESSABLE,
    raise_proposal_http_exception,
)
from src.core.proposals import (
    ProposalConcurrencyError,
    ProposalInvalidStateError,
    ProposalNotFoundError,
    ProposalStorageError,
    ProposalValidationError,
    ProposalVersionConflictError,
)


@pytest.mark.parametrize(
    ("exc", "expected_status"),
    [
        (ProposalNotFoundError("PROPOSAL_NOT_FOUND: 9"), 404),
        (ProposalInvalidStateError("INVALID_STATE: state"), 409),
        (ProposalConcurrencyError("PROPOSAL_LOCK_TIMEOUT: busy"), 409),
        (ProposalVersionConflictError("PROPOSAL_VERSION_CONFLICT: v"), 409),
        (ProposalValidationError("VALIDATION_ERROR: title"), HTTP_422_UNPROCESSABLE),
        (ProposalStorageError("PROPOSAL_STORE_UNAVAILABLE"), 503),
    ],
)
def test_raise_proposal_http_exception_maps_domain_errors(
    exc: Exception, expected_status: int
) -> None:
    with pytest.raises(HTTPException) as caught:
        raise_proposal_http_exception(exc)
    assert caught.value.status_code == expected_status
    assert caught.value.detail == str(exc)


def test_raise_proposal_http_exception_reraises_unknown_error() -> None:
    with pytest.raises(RuntimeError, match="boom"):
        raise_proposal_http_exception(RuntimeError("boom"))
