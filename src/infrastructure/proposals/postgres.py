import hashlib
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from importlib.util import find_spec
from typing import Iterator, Optional

from src.core.proposals.errors import (
    ProposalNotFoundError,
    ProposalStorageError,
    ProposalVersionConflictError,
)
from src.core.proposals.models import (
    ApprovalStepRecord,
    AuditEntryDraft,
    AuditEntryRecord,
    ProposalRecord,
    ProposalTransitionResult,
)
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_PROPOSAL_COLUMNS = """
    proposal_id,
    title,
    applicant_name,
    amount,
    description,
    status,
    current_step_index,
    created_by,
    created_at,
    updated_at,
    version
"""

_AUDIT_COLUMNS = """
    audit_id,
    proposal_id,
    action,
    actor,
    occurred_at,
    details
"""


class PostgresProposalRepository:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("PROPOSAL_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("PROPOSAL_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def create_proposal(
        self,
        *,
        proposal: ProposalRecord,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult:
        query = """
            INSERT INTO proposal_records (
                title,
                applicant_name,
                amount,
                description,
                status,
                current_step_index,
                created_by,
                created_at,
                updated_at,
                version
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING proposal_id
        """
        stored = proposal.model_copy(deep=True)
        with self._transaction() as connection:
            row = connection.execute(
                query,
                (
                    stored.title,
                    stored.applicant_name,
                    str(stored.amount),
                    stored.description,
                    stored.status,
                    stored.current_step_index,
                    stored.created_by,
                    stored.created_at.isoformat(),
                    stored.updated_at.isoformat(),
                    stored.version,
                ),
            ).fetchone()
            stored.proposal_id = int(row["proposal_id"])
            self._upsert_steps(connection=connection, proposal=stored)
            committed = self._insert_audit_entries(
                connection=connection,
                proposal_id=stored.proposal_id,
                drafts=audit_entries,
            )
        return ProposalTransitionResult(proposal=stored, audit_entries=committed)

    def get_proposal(self, *, proposal_id: int) -> Optional[ProposalRecord]:
        query = f"""
            SELECT {_PROPOSAL_COLUMNS}
            FROM proposal_records
            WHERE proposal_id = %s
        """
        with self._transaction() as connection:
            row = connection.execute(query, (proposal_id,)).fetchone()
            if row is None:
                return None
            steps = self._load_steps(connection=connection, proposal_ids=[proposal_id])
        return _to_proposal(row, steps.get(proposal_id, []))

    def list_proposals(
        self,
        *,
        status: Optional[str],
        limit: Optional[int],
        cursor: Optional[int],
    ) -> tuple[list[ProposalRecord], Optional[int]]:
        where_clauses = []
        args: list = []
        if status is not None:
            where_clauses.append("status = %s")
            args.append(status)
        if cursor is not None:
            where_clauses.append("proposal_id > %s")
            args.append(cursor)
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT %s"
            args.append(limit + 1)
        query = f"""
            SELECT {_PROPOSAL_COLUMNS}
            FROM proposal_records
            {where_sql}
            ORDER BY proposal_id ASC
            {limit_sql}
        """
        with self._transaction() as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
            proposal_ids = [int(row["proposal_id"]) for row in rows]
            steps = self._load_steps(connection=connection, proposal_ids=proposal_ids)
        proposals = [_to_proposal(row, steps.get(int(row["proposal_id"]), [])) for row in rows]
        if limit is None or len(proposals) <= limit:
            return proposals, None
        page = proposals[:limit]
        return page, page[-1].proposal_id

    def transition_proposal(
        self,
        *,
        proposal: ProposalRecord,
        expected_version: int,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult:
        query = """
            UPDATE proposal_records SET
                status = %s,
                current_step_index = %s,
                updated_at = %s,
                version = %s
            WHERE proposal_id = %s AND version = %s
        """
        with self._transaction() as connection:
            cursor = connection.execute(
                query,
                (
                    proposal.status,
                    proposal.current_step_index,
                    proposal.updated_at.isoformat(),
                    proposal.version,
                    proposal.proposal_id,
                    expected_version,
                ),
            )
            if cursor.rowcount != 1:
                self._raise_missing_or_conflict(
                    connection=connection,
                    proposal_id=proposal.proposal_id,
                    expected_version=expected_version,
                )
            self._upsert_steps(connection=connection, proposal=proposal)
            committed = self._insert_audit_entries(
                connection=connection,
                proposal_id=proposal.proposal_id,
                drafts=audit_entries,
            )
        return ProposalTransitionResult(proposal=proposal, audit_entries=committed)

    def list_audit_entries(
        self,
        *,
        proposal_id: Optional[int],
        limit: Optional[int],
        after_id: Optional[int],
    ) -> list[AuditEntryRecord]:
        where_clauses = []
        args: list = []
        if proposal_id is not None:
            where_clauses.append("proposal_id = %s")
            args.append(proposal_id)
        if after_id is not None:
            where_clauses.append("audit_id > %s")
            args.append(after_id)
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT %s"
            args.append(limit)
        query = f"""
            SELECT {_AUDIT_COLUMNS}
            FROM proposal_audit_entries
            {where_sql}
            ORDER BY audit_id ASC
            {limit_sql}
        """
        with self._transaction() as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        return [_to_audit_entry(row) for row in rows]

    @contextmanager
    def _transaction(self) -> Iterator:
        error_types = _storage_error_types()
        try:
            connection = self._connect()
        except error_types as exc:
            raise ProposalStorageError("PROPOSAL_STORE_UNAVAILABLE") from exc
        with closing(connection):
            try:
                yield connection
                connection.commit()
            except error_types as exc:
                connection.rollback()
                raise ProposalStorageError(f"PROPOSAL_STORE_WRITE_FAILED: {exc}") from exc
            except Exception:
                connection.rollback()
                raise

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="proposals")

    def _raise_missing_or_conflict(
        self, *, connection, proposal_id: int, expected_version: int
    ) -> None:
        row = connection.execute(
            "SELECT version FROM proposal_records WHERE proposal_id = %s",
            (proposal_id,),
        ).fetchone()
        if row is None:
            raise ProposalNotFoundError(f"PROPOSAL_NOT_FOUND: {proposal_id}")
        raise ProposalVersionConflictError(
            f"PROPOSAL_VERSION_CONFLICT: expected {expected_version}, found {row['version']}"
        )

    def _load_steps(
        self, *, connection, proposal_ids: list[int]
    ) -> dict[int, list[ApprovalStepRecord]]:
        if not proposal_ids:
            return {}
        query = """
            SELECT
                proposal_id,
                step_id,
                name,
                status,
                approver,
                comments,
                completed_at
            FROM proposal_approval_steps
            WHERE proposal_id = ANY(%s)
            ORDER BY proposal_id ASC, step_id ASC
        """
        rows = connection.execute(query, (list(proposal_ids),)).fetchall()
        steps: dict[int, list[ApprovalStepRecord]] = {}
        for row in rows:
            steps.setdefault(int(row["proposal_id"]), []).append(_to_step(row))
        return steps

    def _upsert_steps(self, *, connection, proposal: ProposalRecord) -> None:
        query = """
            INSERT INTO proposal_approval_steps (
                proposal_id,
                step_id,
                name,
                status,
                approver,
                comments,
                completed_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (proposal_id, step_id) DO UPDATE SET
                status=excluded.status,
                approver=excluded.approver,
                comments=excluded.comments,
                completed_at=excluded.completed_at
        """
        for step in proposal.steps:
            connection.execute(
                query,
                (
                    proposal.proposal_id,
                    step.step_id,
                    step.name,
                    step.status,
                    step.approver,
                    step.comments,
                    _optional_iso(step.completed_at),
                ),
            )

    def _insert_audit_entries(
        self, *, connection, proposal_id: int, drafts: list[AuditEntryDraft]
    ) -> list[AuditEntryRecord]:
        if not drafts:
            return []
        # Serializes appends so id order and timestamp order agree across writers.
        connection.execute("SELECT pg_advisory_xact_lock(%s::bigint)", (_AUDIT_APPEND_LOCK_KEY,))
        last_row = connection.execute(
            """
            SELECT occurred_at
            FROM proposal_audit_entries
            ORDER BY audit_id DESC
            LIMIT 1
            """
        ).fetchone()
        last_at = datetime.fromisoformat(last_row["occurred_at"]) if last_row else None
        query = """
            INSERT INTO proposal_audit_entries (
                proposal_id,
                action,
                actor,
                occurred_at,
                details
            ) VALUES (%s, %s, %s, %s, %s)
            RETURNING audit_id
        """
        committed: list[AuditEntryRecord] = []
        for draft in drafts:
            occurred_at = _utc_now()
            if last_at is not None and occurred_at < last_at:
                occurred_at = last_at
            row = connection.execute(
                query,
                (proposal_id, draft.action, draft.actor, occurred_at.isoformat(), draft.details),
            ).fetchone()
            committed.append(
                AuditEntryRecord(
                    audit_id=int(row["audit_id"]),
                    proposal_id=proposal_id,
                    action=draft.action,
                    actor=draft.actor,
                    occurred_at=occurred_at,
                    details=draft.details,
                )
            )
            last_at = occurred_at
        return committed


_AUDIT_APPEND_LOCK_KEY = int.from_bytes(
    hashlib.sha256(b"proposal_audit_entries").digest()[:8], byteorder="big", signed=True
)


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _storage_error_types() -> tuple[type[BaseException], ...]:
    psycopg, _ = _import_psycopg()
    return (psycopg.Error,)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _to_step(row) -> ApprovalStepRecord:
    return ApprovalStepRecord(
        step_id=int(row["step_id"]),
        name=row["name"],
        status=row["status"],
        approver=row["approver"],
        comments=row["comments"],
        completed_at=_optional_datetime(row["completed_at"]),
    )


def _to_proposal(row, steps: list[ApprovalStepRecord]) -> ProposalRecord:
    return ProposalRecord(
        proposal_id=int(row["proposal_id"]),
        title=row["title"],
        applicant_name=row["applicant_name"],
        amount=Decimal(row["amount"]),
        description=row["description"],
        status=row["status"],
        current_step_index=int(row["current_step_index"]),
        steps=steps,
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        version=int(row["version"]),
    )


def _to_audit_entry(row) -> AuditEntryRecord:
    return AuditEntryRecord(
        audit_id=int(row["audit_id"]),
        proposal_id=int(row["proposal_id"]),
        action=row["action"],
        actor=row["actor"],
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
        details=row["details"],
    )
