from copy import deepcopy
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from src.core.proposals.errors import ProposalNotFoundError, ProposalVersionConflictError
from src.core.proposals.models import (
    AuditEntryDraft,
    AuditEntryRecord,
    ProposalRecord,
    ProposalTransitionResult,
)
from src.core.proposals.repository import ProposalRepository


class InMemoryProposalRepository(ProposalRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._proposals: dict[int, ProposalRecord] = {}
        self._audit_entries: list[AuditEntryRecord] = []
        self._next_proposal_id = 1

    def create_proposal(
        self,
        *,
        proposal: ProposalRecord,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult:
        with self._lock:
            stored = deepcopy(proposal)
            stored.proposal_id = self._next_proposal_id
            committed = self._append_audit_entries(
                proposal_id=stored.proposal_id, drafts=audit_entries
            )
            self._next_proposal_id += 1
            self._proposals[stored.proposal_id] = stored
            return ProposalTransitionResult(
                proposal=deepcopy(stored),
                audit_entries=[deepcopy(entry) for entry in committed],
            )

    def get_proposal(self, *, proposal_id: int) -> Optional[ProposalRecord]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            return deepcopy(proposal) if proposal is not None else None

    def list_proposals(
        self,
        *,
        status: Optional[str],
        limit: Optional[int],
        cursor: Optional[int],
    ) -> tuple[list[ProposalRecord], Optional[int]]:
        with self._lock:
            rows = sorted(self._proposals.values(), key=lambda x: x.proposal_id)
            rows = [deepcopy(row) for row in rows]

        if status is not None:
            rows = [row for row in rows if row.status == status]
        if cursor is not None:
            rows = [row for row in rows if row.proposal_id > cursor]
        if limit is None:
            return rows, None

        page = rows[:limit]
        next_cursor = page[-1].proposal_id if len(rows) > limit else None
        return page, next_cursor

    def transition_proposal(
        self,
        *,
        proposal: ProposalRecord,
        expected_version: int,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult:
        with self._lock:
            current = self._proposals.get(proposal.proposal_id)
            if current is None:
                raise ProposalNotFoundError(f"PROPOSAL_NOT_FOUND: {proposal.proposal_id}")
            if current.version != expected_version:
                raise ProposalVersionConflictError(
                    f"PROPOSAL_VERSION_CONFLICT: expected {expected_version}, "
                    f"found {current.version}"
                )
            committed = self._append_audit_entries(
                proposal_id=proposal.proposal_id, drafts=audit_entries
            )
            self._proposals[proposal.proposal_id] = deepcopy(proposal)

        return ProposalTransitionResult(
            proposal=deepcopy(proposal),
            audit_entries=[deepcopy(entry) for entry in committed],
        )

    def list_audit_entries(
        self,
        *,
        proposal_id: Optional[int],
        limit: Optional[int],
        after_id: Optional[int],
    ) -> list[AuditEntryRecord]:
        with self._lock:
            rows = list(self._audit_entries)

        if proposal_id is not None:
            rows = [row for row in rows if row.proposal_id == proposal_id]
        if after_id is not None:
            rows = [row for row in rows if row.audit_id > after_id]
        if limit is not None:
            rows = rows[:limit]
        return [deepcopy(row) for row in rows]

    def _append_audit_entries(
        self, *, proposal_id: int, drafts: list[AuditEntryDraft]
    ) -> list[AuditEntryRecord]:
        # Caller holds self._lock. Entries are built fully before any is stored.
        last_at = self._audit_entries[-1].occurred_at if self._audit_entries else None
        next_id = len(self._audit_entries) + 1
        committed: list[AuditEntryRecord] = []
        for offset, draft in enumerate(drafts):
            occurred_at = _utc_now()
            if last_at is not None and occurred_at < last_at:
                occurred_at = last_at
            committed.append(
                AuditEntryRecord(
                    audit_id=next_id + offset,
                    proposal_id=proposal_id,
                    action=draft.action,
                    actor=draft.actor,
                    occurred_at=occurred_at,
                    details=draft.details,
                )
            )
            last_at = occurred_at
        self._audit_entries.extend(committed)
        return committed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
