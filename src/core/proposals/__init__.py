from src.core.proposals.approval_chain import DEFAULT_APPROVAL_CHAIN, ApprovalChainError
from src.core.proposals.audit import AuditLog
from src.core.proposals.errors import (
    ProposalConcurrencyError,
    ProposalInvalidStateError,
    ProposalLifecycleError,
    ProposalNotFoundError,
    ProposalStorageError,
    ProposalValidationError,
    ProposalVersionConflictError,
)
from src.core.proposals.models import (
    ApprovalStep,
    AuditEntry,
    AuditTrailResponse,
    CustomApprovalChain,
    DefaultApprovalChain,
    Proposal,
    ProposalCreateRequest,
    ProposalListResponse,
    ProposalStepDecisionRequest,
    ProposalSubmitRequest,
    ProposalSupportabilityConfigResponse,
)
from src.core.proposals.repository import ProposalRepository
from src.core.proposals.service import ProposalWorkflowService

__all__ = [
    "DEFAULT_APPROVAL_CHAIN",
    "ApprovalChainError",
    "ApprovalStep",
    "AuditEntry",
    "AuditLog",
    "AuditTrailResponse",
    "CustomApprovalChain",
    "DefaultApprovalChain",
    "Proposal",
    "ProposalConcurrencyError",
    "ProposalCreateRequest",
    "ProposalInvalidStateError",
    "ProposalLifecycleError",
    "ProposalListResponse",
    "ProposalNotFoundError",
    "ProposalRepository",
    "ProposalStepDecisionRequest",
    "ProposalStorageError",
    "ProposalSubmitRequest",
    "ProposalSupportabilityConfigResponse",
    "ProposalValidationError",
    "ProposalVersionConflictError",
    "ProposalWorkflowService",
]
