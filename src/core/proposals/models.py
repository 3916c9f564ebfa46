from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

ProposalStatus = Literal["DRAFT", "UNDER_REVIEW", "APPROVED", "REJECTED"]

ApprovalStepStatus = Literal["PENDING", "APPROVED", "REJECTED"]

AuditAction = Literal[
    "PROPOSAL_CREATED",
    "PROPOSAL_SUBMITTED",
    "STEP_APPROVED",
    "PROPOSAL_APPROVED",
    "PROPOSAL_REJECTED",
]

SYSTEM_ACTOR = "SYSTEM"


class ProposalCreateRequest(BaseModel):
    title: str = Field(
        description="Investment proposal title.",
        examples=["Solar Farm"],
    )
    applicant_name: str = Field(
        alias="applicantName",
        description="Name of the applicant submitting the proposal.",
        examples=["Alice"],
    )
    amount: Decimal = Field(
        description=(
            "Requested investment amount as a JSON number or decimal string. Send a string "
            "to keep every digit; JSON numbers are limited to binary float precision."
        ),
        examples=["100000.00", 2500.5],
    )
    description: str = Field(
        description="Description of the investment opportunity.",
        examples=["Community solar farm, 5MW capacity."],
    )

    model_config = {"populate_by_name": True}


class DefaultApprovalChain(BaseModel):
    kind: Literal["DEFAULT"] = Field(
        default="DEFAULT",
        description="Use the approval chain configured on the service.",
        examples=["DEFAULT"],
    )


class CustomApprovalChain(BaseModel):
    kind: Literal["CUSTOM"] = Field(
        default="CUSTOM",
        description="Use the caller-supplied ordered list of step names.",
        examples=["CUSTOM"],
    )
    step_names: List[str] = Field(
        alias="stepNames",
        description="Ordered approval step names. Order is preserved.",
        examples=[["PEER_REVIEW", "RISK_REVIEW"]],
    )

    model_config = {"populate_by_name": True}


ApprovalChainSelection = Annotated[
    Union[DefaultApprovalChain, CustomApprovalChain],
    Field(discriminator="kind"),
]


class ProposalSubmitRequest(BaseModel):
    approval_chain: ApprovalChainSelection = Field(
        default_factory=DefaultApprovalChain,
        alias="approvalChain",
        description="Approval chain selection: the configured default or a custom ordered list.",
        examples=[{"kind": "DEFAULT"}, {"kind": "CUSTOM", "stepNames": ["PEER_REVIEW"]}],
    )

    model_config = {"populate_by_name": True}


class ProposalStepDecisionRequest(BaseModel):
    approver: str = Field(
        description="Actor resolving the current approval step.",
        examples=["bob"],
    )
    comments: Optional[str] = Field(
        default=None,
        description="Approver comments. Required when rejecting.",
        examples=["insufficient collateral"],
    )
    expected_step_index: Optional[int] = Field(
        default=None,
        alias="expectedStepIndex",
        ge=0,
        description=(
            "Step index the decision applies to. Defaults to the step current when the request "
            "arrives; the decision is refused if another decision resolved that step first."
        ),
        examples=[0],
    )

    model_config = {"populate_by_name": True}


class ApprovalStep(BaseModel):
    id: int = Field(description="Step identifier, unique within its proposal.", examples=[1])
    name: str = Field(description="Approval step name.", examples=["MANAGER_REVIEW"])
    status: ApprovalStepStatus = Field(description="Step outcome.", examples=["PENDING"])
    approver: Optional[str] = Field(
        default=None,
        description="Actor who resolved the step.",
        examples=["bob"],
    )
    comments: Optional[str] = Field(
        default=None,
        description="Comments supplied by the approver.",
        examples=["Looks good"],
    )
    completed_at: Optional[str] = Field(
        default=None,
        alias="completedAt",
        description="UTC ISO8601 timestamp when the step was resolved.",
        examples=["2026-10-18T12:00:00+00:00"],
    )

    model_config = {"populate_by_name": True}


class Proposal(BaseModel):
    id: int = Field(description="Proposal identifier.", examples=[1])
    title: str = Field(description="Investment proposal title.", examples=["Solar Farm"])
    applicant_name: str = Field(
        alias="applicantName",
        description="Applicant name.",
        examples=["Alice"],
    )
    amount: Decimal = Field(
        description="Requested investment amount, returned as an exact decimal string.",
        examples=["100000.00"],
    )
    description: str = Field(description="Proposal description.", examples=["desc"])
    status: ProposalStatus = Field(description="Current proposal status.", examples=["DRAFT"])
    current_step_index: int = Field(
        alias="currentStepIndex",
        description="Index of the step awaiting a decision while UNDER_REVIEW.",
        examples=[0],
    )
    steps: List[ApprovalStep] = Field(
        default_factory=list,
        description="Ordered approval steps. Empty while DRAFT.",
        examples=[[{"id": 1, "name": "MANAGER_REVIEW", "status": "PENDING"}]],
    )
    created_by: str = Field(
        alias="createdBy",
        description="Actor that created the proposal.",
        examples=["alice"],
    )
    created_at: str = Field(
        alias="createdAt",
        description="UTC ISO8601 creation timestamp.",
        examples=["2026-10-18T12:00:00+00:00"],
    )
    updated_at: str = Field(
        alias="updatedAt",
        description="UTC ISO8601 timestamp of the latest committed transition.",
        examples=["2026-10-18T12:05:00+00:00"],
    )
    version: int = Field(
        description="Monotonic revision number of the stored proposal.",
        examples=[1],
    )

    model_config = {"populate_by_name": True}


class ProposalListResponse(BaseModel):
    items: List[Proposal] = Field(
        default_factory=list,
        description="Proposals in ascending id order.",
        examples=[[{"id": 1, "title": "Solar Farm", "status": "DRAFT"}]],
    )
    next_cursor: Optional[str] = Field(
        default=None,
        alias="nextCursor",
        description="Cursor for the next page when a limit was applied.",
        examples=["1"],
    )

    model_config = {"populate_by_name": True}


class AuditEntry(BaseModel):
    id: int = Field(description="Audit entry identifier in insertion order.", examples=[1])
    proposal_id: int = Field(
        alias="proposalId",
        description="Proposal the entry refers to.",
        examples=[1],
    )
    action: AuditAction = Field(description="Recorded action.", examples=["PROPOSAL_CREATED"])
    actor: str = Field(description="Actor that triggered the action.", examples=["alice"])
    timestamp: str = Field(
        description="UTC ISO8601 timestamp of the entry.",
        examples=["2026-10-18T12:00:00+00:00"],
    )
    details: Optional[str] = Field(
        default=None,
        description="Free-text details.",
        examples=["Submitted with chain MANAGER_REVIEW > FINAL_APPROVAL"],
    )

    model_config = {"populate_by_name": True}


class AuditTrailResponse(BaseModel):
    items: List[AuditEntry] = Field(
        default_factory=list,
        description="Audit entries in ascending id order.",
        examples=[[{"id": 1, "proposalId": 1, "action": "PROPOSAL_CREATED"}]],
    )
    next_cursor: Optional[str] = Field(
        default=None,
        alias="nextCursor",
        description="Cursor (last returned id) for the next page when a limit was applied.",
        examples=["10"],
    )

    model_config = {"populate_by_name": True}


class ProposalSupportabilityConfigResponse(BaseModel):
    store_backend: str = Field(
        alias="storeBackend",
        description="Configured proposal repository backend name.",
        examples=["IN_MEMORY"],
    )
    backend_ready: bool = Field(
        alias="backendReady",
        description="Whether repository backend initialized with current runtime settings.",
        examples=[True],
    )
    backend_init_error: Optional[str] = Field(
        default=None,
        alias="backendInitError",
        description="Stable initialization error code when backend is not ready.",
        examples=["PROPOSAL_POSTGRES_DSN_REQUIRED"],
    )
    lifecycle_enabled: bool = Field(
        alias="lifecycleEnabled",
        description="Whether proposal workflow APIs are enabled.",
        examples=[True],
    )
    support_apis_enabled: bool = Field(
        alias="supportApisEnabled",
        description="Whether supportability endpoints are enabled.",
        examples=[True],
    )
    default_approval_chain: List[str] = Field(
        alias="defaultApprovalChain",
        description="Step names used when a proposal is submitted with the default chain.",
        examples=[["MANAGER_REVIEW", "COMPLIANCE_REVIEW", "FINAL_APPROVAL"]],
    )
    lock_timeout_seconds: float = Field(
        alias="lockTimeoutSeconds",
        description="Bounded wait for the per-proposal lock.",
        examples=[5.0],
    )
    conflict_retries: int = Field(
        alias="conflictRetries",
        description="Optimistic concurrency retries before surfacing a conflict.",
        examples=[3],
    )

    model_config = {"populate_by_name": True}


class ApprovalStepRecord(BaseModel):
    step_id: int = Field(description="Internal step identifier.", examples=[1])
    name: str = Field(description="Internal step name.", examples=["MANAGER_REVIEW"])
    status: ApprovalStepStatus = Field(description="Internal step status.", examples=["PENDING"])
    approver: Optional[str] = Field(
        default=None, description="Internal resolving actor.", examples=["bob"]
    )
    comments: Optional[str] = Field(
        default=None, description="Internal approver comments.", examples=["ok"]
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="Internal resolution timestamp.",
        examples=["2026-10-18T12:00:00+00:00"],
    )


class ProposalRecord(BaseModel):
    proposal_id: Optional[int] = Field(
        default=None,
        description="Internal proposal identifier. Assigned by the store on create.",
        examples=[1],
    )
    title: str = Field(description="Internal title.", examples=["Solar Farm"])
    applicant_name: str = Field(description="Internal applicant name.", examples=["Alice"])
    amount: Decimal = Field(description="Internal requested amount.", examples=["100000"])
    description: str = Field(description="Internal description.", examples=["desc"])
    status: ProposalStatus = Field(description="Internal status.", examples=["DRAFT"])
    current_step_index: int = Field(
        default=0, description="Internal current step index.", examples=[0]
    )
    steps: List[ApprovalStepRecord] = Field(
        default_factory=list, description="Internal ordered steps.", examples=[[]]
    )
    created_by: str = Field(description="Internal creator actor id.", examples=["alice"])
    created_at: datetime = Field(
        description="Internal creation timestamp.", examples=["2026-10-18T12:00:00+00:00"]
    )
    updated_at: datetime = Field(
        description="Internal latest-transition timestamp.",
        examples=["2026-10-18T12:05:00+00:00"],
    )
    version: int = Field(default=1, description="Internal CAS revision.", examples=[1])


class AuditEntryDraft(BaseModel):
    action: AuditAction = Field(description="Internal audit action.", examples=["STEP_APPROVED"])
    actor: str = Field(description="Internal audit actor.", examples=["bob"])
    details: Optional[str] = Field(
        default=None, description="Internal audit details.", examples=["step 1"]
    )


class AuditEntryRecord(BaseModel):
    audit_id: int = Field(description="Internal audit identifier.", examples=[1])
    proposal_id: int = Field(description="Internal proposal identifier.", examples=[1])
    action: AuditAction = Field(description="Internal audit action.", examples=["STEP_APPROVED"])
    actor: str = Field(description="Internal audit actor.", examples=["bob"])
    occurred_at: datetime = Field(
        description="Internal audit timestamp.", examples=["2026-10-18T12:00:00+00:00"]
    )
    details: Optional[str] = Field(
        default=None, description="Internal audit details.", examples=["step 1"]
    )


class ProposalTransitionResult(BaseModel):
    proposal: ProposalRecord = Field(
        description="Internal proposal snapshot after the committed unit.",
        examples=[{"proposal_id": 1, "status": "UNDER_REVIEW"}],
    )
    audit_entries: List[AuditEntryRecord] = Field(
        default_factory=list,
        description="Internal audit entries committed with the proposal write.",
        examples=[[{"audit_id": 1, "action": "PROPOSAL_SUBMITTED"}]],
    )
