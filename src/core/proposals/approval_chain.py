"""Approval chain policy: turns a chain selection into canonical ordered step names.

The resolved names are copied into the proposal's steps at submission time, so
changing the configured default never affects proposals already under review.
"""

from typing import Iterable, Optional, Sequence

from src.core.proposals.models import (
    ApprovalChainSelection,
    ApprovalStepRecord,
    CustomApprovalChain,
)

DEFAULT_APPROVAL_CHAIN: tuple[str, ...] = (
    "MANAGER_REVIEW",
    "COMPLIANCE_REVIEW",
    "FINAL_APPROVAL",
)

MAX_STEP_NAME_LENGTH = 64


class ApprovalChainError(ValueError):
    pass


def normalize_chain(step_names: Iterable[str]) -> tuple[str, ...]:
    names: list[str] = []
    for raw_name in step_names:
        name = (raw_name or "").strip()
        if not name:
            raise ApprovalChainError("APPROVAL_CHAIN_BLANK_STEP_NAME")
        if len(name) > MAX_STEP_NAME_LENGTH:
            raise ApprovalChainError(f"APPROVAL_CHAIN_STEP_NAME_TOO_LONG: {name[:16]}...")
        if names and names[-1] == name:
            raise ApprovalChainError(f"APPROVAL_CHAIN_ADJACENT_DUPLICATE: {name}")
        names.append(name)
    if not names:
        raise ApprovalChainError("APPROVAL_CHAIN_EMPTY")
    return tuple(names)


def parse_chain_setting(value: Optional[str]) -> tuple[str, ...]:
    if value is None or not value.strip():
        return DEFAULT_APPROVAL_CHAIN
    return normalize_chain(value.split(","))


def resolve_approval_chain(
    selection: ApprovalChainSelection,
    *,
    default_chain: Sequence[str],
) -> tuple[str, ...]:
    if isinstance(selection, CustomApprovalChain):
        return normalize_chain(selection.step_names)
    return normalize_chain(default_chain)


def build_pending_steps(step_names: Sequence[str]) -> list[ApprovalStepRecord]:
    return [
        ApprovalStepRecord(step_id=position, name=name, status="PENDING")
        for position, name in enumerate(step_names, start=1)
    ]
