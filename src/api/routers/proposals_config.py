import os
from typing import cast

from src.api.routers.runtime_utils import env_float, env_int
from src.core.proposals.approval_chain import ApprovalChainError, parse_chain_setting
from src.core.proposals.repository import ProposalRepository
from src.infrastructure.proposals import InMemoryProposalRepository, PostgresProposalRepository


def proposal_store_backend_name() -> str:
    backend = os.getenv("PROPOSAL_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    return "IN_MEMORY"


def proposal_postgres_dsn() -> str:
    return os.getenv("PROPOSAL_POSTGRES_DSN", "").strip()


def proposal_default_approval_chain() -> tuple[str, ...]:
    try:
        return parse_chain_setting(os.getenv("PROPOSAL_DEFAULT_APPROVAL_CHAIN"))
    except ApprovalChainError as exc:
        raise RuntimeError("PROPOSAL_DEFAULT_APPROVAL_CHAIN_INVALID") from exc


def proposal_lock_timeout_seconds() -> float:
    return env_float("PROPOSAL_LOCK_TIMEOUT_SECONDS", 5.0)


def proposal_conflict_retries() -> int:
    return max(env_int("PROPOSAL_CONFLICT_RETRIES", 3), 0)


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> ProposalRepository:
    backend = proposal_store_backend_name()
    if backend == "POSTGRES":
        dsn = proposal_postgres_dsn()
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        try:
            return cast(ProposalRepository, PostgresProposalRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("PROPOSAL_POSTGRES_CONNECTION_FAILED") from exc
    return cast(ProposalRepository, InMemoryProposalRepository())
