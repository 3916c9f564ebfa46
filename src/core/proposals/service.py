import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from src.core.proposals.approval_chain import (
    DEFAULT_APPROVAL_CHAIN,
    ApprovalChainError,
    build_pending_steps,
    normalize_chain,
    resolve_approval_chain,
)
from src.core.proposals.audit import AuditLog
from src.core.proposals.errors import (
    ProposalConcurrencyError,
    ProposalInvalidStateError,
    ProposalNotFoundError,
    ProposalValidationError,
    ProposalVersionConflictError,
)
from src.core.proposals.locking import ProposalLockRegistry
from src.core.proposals.models import (
    ApprovalStep,
    ApprovalStepRecord,
    AuditEntryDraft,
    AuditTrailResponse,
    Proposal,
    ProposalCreateRequest,
    ProposalListResponse,
    ProposalRecord,
    ProposalStatus,
    ProposalStepDecisionRequest,
    ProposalSubmitRequest,
)
from src.core.proposals.repository import ProposalRepository

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"APPROVED", "REJECTED"}

REQUIRED_STATUS: dict[str, ProposalStatus] = {
    "SUBMIT": "DRAFT",
    "APPROVE_STEP": "UNDER_REVIEW",
    "REJECT": "UNDER_REVIEW",
}

Mutation = Callable[[ProposalRecord, datetime], list[AuditEntryDraft]]


def derive_status(steps: Sequence[ApprovalStepRecord]) -> ProposalStatus:
    if not steps:
        return "DRAFT"
    if any(step.status == "REJECTED" for step in steps):
        return "REJECTED"
    if all(step.status == "APPROVED" for step in steps):
        return "APPROVED"
    return "UNDER_REVIEW"


class ProposalWorkflowService:
    def __init__(
        self,
        *,
        repository: ProposalRepository,
        default_chain: Sequence[str] = DEFAULT_APPROVAL_CHAIN,
        lock_timeout_seconds: float = 5.0,
        conflict_retries: int = 3,
    ) -> None:
        if conflict_retries < 0:
            raise ValueError("conflict_retries must be >= 0")
        self._repository = repository
        self._audit_log = AuditLog(repository=repository)
        self._locks = ProposalLockRegistry(timeout_seconds=lock_timeout_seconds)
        self._conflict_retries = conflict_retries
        self.default_chain = default_chain

    @property
    def default_chain(self) -> tuple[str, ...]:
        return self._default_chain

    @default_chain.setter
    def default_chain(self, value: Sequence[str]) -> None:
        try:
            self._default_chain = normalize_chain(value)
        except ApprovalChainError as exc:
            raise ValueError(f"invalid default approval chain: {exc}") from exc

    def create_proposal(
        self,
        *,
        payload: ProposalCreateRequest,
        actor_id: Optional[str] = None,
    ) -> Proposal:
        title = _require_text(payload.title, "title")
        applicant_name = _require_text(payload.applicant_name, "applicant_name")
        description = _require_text(payload.description, "description")
        amount = _require_positive_amount(payload.amount)
        actor = _optional_text(actor_id) or applicant_name

        now = _utc_now()
        proposal = ProposalRecord(
            title=title,
            applicant_name=applicant_name,
            amount=amount,
            description=description,
            status="DRAFT",
            current_step_index=0,
            steps=[],
            created_by=actor,
            created_at=now,
            updated_at=now,
            version=1,
        )
        result = self._repository.create_proposal(
            proposal=proposal,
            audit_entries=[self._audit_log.proposal_created(actor=actor, title=title)],
        )
        logger.info(
            "proposal.created",
            extra={
                "extra_fields": {
                    "proposal_id": result.proposal.proposal_id,
                    "actor": actor,
                }
            },
        )
        return self._to_proposal(result.proposal)

    def submit_proposal(
        self,
        *,
        proposal_id: int,
        payload: Optional[ProposalSubmitRequest] = None,
        actor_id: Optional[str] = None,
    ) -> Proposal:
        selection = (payload or ProposalSubmitRequest()).approval_chain

        def _submit(proposal: ProposalRecord, now: datetime) -> list[AuditEntryDraft]:
            self._require_status(proposal, "SUBMIT")
            try:
                chain = resolve_approval_chain(selection, default_chain=self._default_chain)
            except ApprovalChainError as exc:
                raise ProposalValidationError(str(exc)) from exc
            proposal.steps = build_pending_steps(chain)
            proposal.current_step_index = 0
            proposal.status = derive_status(proposal.steps)
            actor = _optional_text(actor_id) or proposal.applicant_name
            return [self._audit_log.proposal_submitted(actor=actor, chain=chain)]

        return self._apply_transition(proposal_id=proposal_id, operation="SUBMIT", mutate=_submit)

    def approve_step(
        self,
        *,
        proposal_id: int,
        payload: ProposalStepDecisionRequest,
    ) -> Proposal:
        approver = _require_text(payload.approver, "approver")
        comments = _optional_text(payload.comments)
        step_index = self._decision_step_index(
            proposal_id, "APPROVE_STEP", payload.expected_step_index
        )

        def _approve(proposal: ProposalRecord, now: datetime) -> list[AuditEntryDraft]:
            self._require_status(proposal, "APPROVE_STEP")
            self._require_step_index(proposal, step_index)
            step = proposal.steps[proposal.current_step_index]
            _resolve_step(step, status="APPROVED", approver=approver, comments=comments, now=now)
            drafts = [
                self._audit_log.step_approved(
                    approver=approver, step_name=step.name, comments=comments
                )
            ]
            proposal.status = derive_status(proposal.steps)
            if proposal.status == "APPROVED":
                drafts.append(self._audit_log.proposal_approved())
            else:
                proposal.current_step_index += 1
            return drafts

        return self._apply_transition(
            proposal_id=proposal_id, operation="APPROVE_STEP", mutate=_approve
        )

    def reject_proposal(
        self,
        *,
        proposal_id: int,
        payload: ProposalStepDecisionRequest,
    ) -> Proposal:
        approver = _require_text(payload.approver, "approver")
        comments = _optional_text(payload.comments)
        if comments is None:
            raise ProposalValidationError("VALIDATION_ERROR: comments are required to reject")
        step_index = self._decision_step_index(proposal_id, "REJECT", payload.expected_step_index)

        def _reject(proposal: ProposalRecord, now: datetime) -> list[AuditEntryDraft]:
            self._require_status(proposal, "REJECT")
            self._require_step_index(proposal, step_index)
            step = proposal.steps[proposal.current_step_index]
            _resolve_step(step, status="REJECTED", approver=approver, comments=comments, now=now)
            proposal.status = derive_status(proposal.steps)
            return [
                self._audit_log.proposal_rejected(
                    approver=approver, step_name=step.name, comments=comments
                )
            ]

        return self._apply_transition(proposal_id=proposal_id, operation="REJECT", mutate=_reject)

    def get_proposal(self, *, proposal_id: int) -> Proposal:
        return self._to_proposal(self._load(proposal_id))

    def list_proposals(
        self,
        *,
        status: Optional[ProposalStatus] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ProposalListResponse:
        rows, next_cursor = self._repository.list_proposals(
            status=status,
            limit=limit,
            cursor=_parse_cursor(cursor),
        )
        return ProposalListResponse(
            items=[self._to_proposal(row) for row in rows],
            next_cursor=str(next_cursor) if next_cursor is not None else None,
        )

    def get_audit_trail(
        self,
        *,
        proposal_id: Optional[int] = None,
        limit: Optional[int] = None,
        after_id: Optional[int] = None,
    ) -> AuditTrailResponse:
        return self._audit_log.query(proposal_id=proposal_id, limit=limit, after_id=after_id)

    def _apply_transition(self, *, proposal_id: int, operation: str, mutate: Mutation) -> Proposal:
        with self._locks.hold(proposal_id):
            for attempt in range(self._conflict_retries + 1):
                proposal = self._load(proposal_id)
                expected_version = proposal.version
                now = _utc_now()
                drafts = mutate(proposal, now)
                proposal.version = expected_version + 1
                proposal.updated_at = now
                try:
                    result = self._repository.transition_proposal(
                        proposal=proposal,
                        expected_version=expected_version,
                        audit_entries=drafts,
                    )
                except ProposalVersionConflictError:
                    logger.warning(
                        "proposal.version_conflict",
                        extra={
                            "extra_fields": {
                                "proposal_id": proposal_id,
                                "operation": operation,
                                "attempt": attempt + 1,
                            }
                        },
                    )
                    continue
                logger.info(
                    "proposal.transition_committed",
                    extra={
                        "extra_fields": {
                            "proposal_id": proposal_id,
                            "operation": operation,
                            "status": result.proposal.status,
                            "version": result.proposal.version,
                        }
                    },
                )
                return self._to_proposal(result.proposal)
        raise ProposalConcurrencyError(
            f"PROPOSAL_CONCURRENT_MODIFICATION: proposal {proposal_id} changed concurrently, retry"
        )

    def _load(self, proposal_id: int) -> ProposalRecord:
        proposal = self._repository.get_proposal(proposal_id=proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"PROPOSAL_NOT_FOUND: {proposal_id}")
        return proposal

    def _require_status(self, proposal: ProposalRecord, operation: str) -> None:
        required = REQUIRED_STATUS[operation]
        if proposal.status != required:
            raise ProposalInvalidStateError(
                f"INVALID_STATE: {operation} requires status {required}, "
                f"proposal {proposal.proposal_id} is {proposal.status}"
            )

    def _decision_step_index(
        self, proposal_id: int, operation: str, expected_step_index: Optional[int]
    ) -> int:
        """Step a decision is bound to.

        Callers may pin it with expected_step_index. Otherwise the step current when the
        request arrives is used, so a decision never lands on a step that was advanced while
        it waited for the proposal lock.
        """
        if expected_step_index is not None:
            return expected_step_index
        observed = self._load(proposal_id)
        self._require_status(observed, operation)
        return observed.current_step_index

    def _require_step_index(self, proposal: ProposalRecord, expected_step_index: int) -> None:
        if expected_step_index != proposal.current_step_index:
            raise ProposalInvalidStateError(
                "STATE_CONFLICT: expected step index "
                f"{expected_step_index}, proposal is at {proposal.current_step_index}"
            )

    def _to_proposal(self, proposal: ProposalRecord) -> Proposal:
        return Proposal(
            id=proposal.proposal_id,
            title=proposal.title,
            applicant_name=proposal.applicant_name,
            amount=proposal.amount,
            description=proposal.description,
            status=proposal.status,
            current_step_index=proposal.current_step_index,
            steps=[self._to_step(step) for step in proposal.steps],
            created_by=proposal.created_by,
            created_at=proposal.created_at.isoformat(),
            updated_at=proposal.updated_at.isoformat(),
            version=proposal.version,
        )

    def _to_step(self, step: ApprovalStepRecord) -> ApprovalStep:
        return ApprovalStep(
            id=step.step_id,
            name=step.name,
            status=step.status,
            approver=step.approver,
            comments=step.comments,
            completed_at=step.completed_at.isoformat() if step.completed_at else None,
        )


def _resolve_step(
    step: ApprovalStepRecord,
    *,
    status: str,
    approver: str,
    comments: Optional[str],
    now: datetime,
) -> None:
    if step.status != "PENDING":
        raise ProposalInvalidStateError(f"INVALID_STATE: step {step.name} is already {step.status}")
    step.status = status
    step.approver = approver
    step.comments = comments
    step.completed_at = now


def _require_text(value: Optional[str], field_name: str) -> str:
    normalized = _optional_text(value)
    if normalized is None:
        raise ProposalValidationError(f"VALIDATION_ERROR: {field_name} must not be blank")
    return normalized


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _require_positive_amount(value: Decimal) -> Decimal:
    if not value.is_finite() or value <= 0:
        raise ProposalValidationError("VALIDATION_ERROR: amount must be a positive decimal")
    return value


def _parse_cursor(cursor: Optional[str]) -> Optional[int]:
    if cursor is None or cursor == "":
        return None
    try:
        return int(cursor)
    except ValueError as exc:
        raise ProposalValidationError(f"VALIDATION_ERROR: invalid cursor {cursor!r}") from exc


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
