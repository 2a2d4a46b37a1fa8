"""Pydantic models for pipeline runs and their timelines."""

from __future__ import annotations

from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from pipeline_runner.models.approval import ApprovalAck, ApprovalDecision

APPROVAL_CHECKPOINT_TYPE = "Checkpoint.Approval"


class PipelineRun(BaseModel):
    """One triggered execution of a pipeline definition."""

    run_id: int
    pipeline_id: int
    name: Optional[str] = None
    state: Optional[str] = None
    branch_ref: str
    stages_to_skip: Tuple[str, ...] = ()
    web_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class TimelineRecord(BaseModel):
    """Entry in a run's timeline (stage, job, task, checkpoint, ...)."""

    record_id: str
    record_type: str
    name: Optional[str] = None
    state: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_approval_checkpoint(self) -> bool:
        return self.record_type == APPROVAL_CHECKPOINT_TYPE


class RunOutcome(BaseModel):
    """Result of the trigger, wait and approve flow."""

    run: PipelineRun
    state: Literal["decided", "timed_out"]
    decision: Optional[ApprovalDecision] = None
    ack: Optional[ApprovalAck] = None
    attempts: int = 0
    elapsed_seconds: float = 0.0
