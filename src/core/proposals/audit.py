from typing import Optional, Sequence

from src.core.proposals.models import (
    SYSTEM_ACTOR,
    AuditEntry,
    AuditEntryDraft,
    AuditEntryRecord,
    AuditTrailResponse,
)
from src.core.proposals.repository import ProposalRepository


class AuditLog:
    """Append-only audit trail of proposal actions.

    Entries are staged as drafts by the workflow service and committed by the
    repository in the same unit as the proposal write; the repository assigns
    ids and timestamps at commit time.
    """

    def __init__(self, *, repository: ProposalRepository) -> None:
        self._repository = repository

    def proposal_created(self, *, actor: str, title: str) -> AuditEntryDraft:
        return AuditEntryDraft(
            action="PROPOSAL_CREATED",
            actor=actor,
            details=f"Proposal '{title}' created",
        )

    def proposal_submitted(self, *, actor: str, chain: Sequence[str]) -> AuditEntryDraft:
        return AuditEntryDraft(
            action="PROPOSAL_SUBMITTED",
            actor=actor,
            details=f"Submitted for review with chain {' > '.join(chain)}",
        )

    def step_approved(
        self, *, approver: str, step_name: str, comments: Optional[str]
    ) -> AuditEntryDraft:
        details = f"Step {step_name} approved"
        if comments:
            details = f"{details}: {comments}"
        return AuditEntryDraft(action="STEP_APPROVED", actor=approver, details=details)

    def proposal_approved(self) -> AuditEntryDraft:
        return AuditEntryDraft(
            action="PROPOSAL_APPROVED",
            actor=SYSTEM_ACTOR,
            details="All approval steps completed",
        )

    def proposal_rejected(self, *, approver: str, step_name: str, comments: str) -> AuditEntryDraft:
        return AuditEntryDraft(
            action="PROPOSAL_REJECTED",
            actor=approver,
            details=f"Rejected at step {step_name}: {comments}",
        )

    def query(
        self,
        *,
        proposal_id: Optional[int] = None,
        limit: Optional[int] = None,
        after_id: Optional[int] = None,
    ) -> AuditTrailResponse:
        fetch_limit = limit + 1 if limit is not None else None
        rows = self._repository.list_audit_entries(
            proposal_id=proposal_id,
            limit=fetch_limit,
            after_id=after_id,
        )
        next_cursor: Optional[str] = None
        if limit is not None and len(rows) > limit:
            rows = rows[:limit]
            next_cursor = str(rows[-1].audit_id)
        return AuditTrailResponse(
            items=[to_audit_entry(row) for row in rows],
            next_cursor=next_cursor,
        )


def to_audit_entry(record: AuditEntryRecord) -> AuditEntry:
    return AuditEntry(
        id=record.audit_id,
        proposal_id=record.proposal_id,
        action=record.action,
        actor=record.actor,
        timestamp=record.occurred_at.isoformat(),
        details=record.details,
    )
