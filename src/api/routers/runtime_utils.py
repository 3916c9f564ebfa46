import os

from fastapi import HTTPException, status


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def assert_feature_enabled(*, name: str, default: bool, detail: str) -> None:
    if not env_flag(name, default):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


def assert_lifecycle_enabled() -> None:
    assert_feature_enabled(
        name="PROPOSAL_WORKFLOW_LIFECYCLE_ENABLED",
        default=True,
        detail="PROPOSAL_WORKFLOW_LIFECYCLE_DISABLED",
    )


def assert_support_apis_enabled() -> None:
    assert_feature_enabled(
        name="PROPOSAL_SUPPORT_APIS_ENABLED",
        default=True,
        detail="PROPOSAL_SUPPORT_APIS_DISABLED",
    )


def normalize_backend_init_error(
    *, detail: str, required_detail: str, fallback_detail: str
) -> str:
    if detail == required_detail:
        return detail
    return fallback_detail
