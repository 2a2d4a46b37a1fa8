"""Pydantic models for pending approvals and the decisions submitted for them."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class ApprovalStatus(str, Enum):
    """Decision values accepted by the approvals endpoint."""

    APPROVED = "approved"
    REJECTED = "rejected"


class PendingApproval(BaseModel):
    """Cross-pipeline view of an approval still waiting for a decision."""

    approval_id: str
    pipeline_name: str
    created_on: AwareDatetime
    min_required_approvers: int = 1
    detail_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ApprovalDecision(BaseModel):
    """A single decision for a single approval."""

    approval_id: str
    status: ApprovalStatus
    comment: str = ""

    model_config = ConfigDict(frozen=True)

    def to_payload(self) -> dict[str, str]:
        return {
            "approvalId": self.approval_id,
            "comment": self.comment,
            "status": self.status.value,
        }


class DecisionTemplate(BaseModel):
    """Status and comment applied to every approval a flow resolves."""

    status: ApprovalStatus = ApprovalStatus.APPROVED
    comment: str = ""

    model_config = ConfigDict(frozen=True)

    def for_approval(self, approval_id: str) -> ApprovalDecision:
        return ApprovalDecision(approval_id=approval_id, status=self.status, comment=self.comment)


class ApprovalAck(BaseModel):
    """Service acknowledgement for a submitted decision."""

    approval_id: str
    status: str


class DecisionOutcome(BaseModel):
    """Result of submitting one decision inside a batch."""

    approval: PendingApproval
    decision: ApprovalDecision
    ack: Optional[ApprovalAck] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class BatchOutcome(BaseModel):
    """All outcomes of a batch approval, in submission order."""

    outcomes: List[DecisionOutcome] = Field(default_factory=list)

    @property
    def failures(self) -> List[DecisionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def succeeded(self) -> bool:
        return not self.failures


class PollResult(BaseModel):
    """Terminal state of an approval poll."""

    state: Literal["found", "timed_out"]
    checkpoint_id: Optional[str] = None
    attempts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def found(self) -> bool:
        return self.state == "found"
