from typing import Optional, Protocol

from src.core.proposals.models import (
    AuditEntryDraft,
    AuditEntryRecord,
    ProposalRecord,
    ProposalTransitionResult,
)


class ProposalRepository(Protocol):
    def create_proposal(
        self,
        *,
        proposal: ProposalRecord,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult: ...

    def get_proposal(self, *, proposal_id: int) -> Optional[ProposalRecord]: ...

    def list_proposals(
        self,
        *,
        status: Optional[str],
        limit: Optional[int],
        cursor: Optional[int],
    ) -> tuple[list[ProposalRecord], Optional[int]]: ...

    def transition_proposal(
        self,
        *,
        proposal: ProposalRecord,
        expected_version: int,
        audit_entries: list[AuditEntryDraft],
    ) -> ProposalTransitionResult: ...

    def list_audit_entries(
        self,
        *,
        proposal_id: Optional[int],
        limit: Optional[int],
        after_id: Optional[int],
    ) -> list[AuditEntryRecord]: ...
