class ProposalLifecycleError(Exception):
    pass


class ProposalNotFoundError(ProposalLifecycleError):
    pass


class ProposalValidationError(ProposalLifecycleError):
    pass


class ProposalInvalidStateError(ProposalLifecycleError):
    pass


class ProposalConcurrencyError(ProposalLifecycleError):
    """Transient contention on one proposal. Safe to retry."""


class ProposalStorageError(ProposalLifecycleError):
    """Store or audit-log write failed. The operation had no visible effect."""


class ProposalVersionConflictError(ProposalConcurrencyError):
    """Raised by repositories when a compare-and-swap on the proposal version fails."""
