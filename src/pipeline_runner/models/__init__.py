"""Pydantic models defining shared data contracts."""

from pipeline_runner.models.approval import (
    ApprovalAck,
    ApprovalDecision,
    ApprovalStatus,
    BatchOutcome,
    DecisionOutcome,
    DecisionTemplate,
    PendingApproval,
    PollResult,
)
from pipeline_runner.models.run import (
    APPROVAL_CHECKPOINT_TYPE,
    PipelineRun,
    RunOutcome,
    TimelineRecord,
)

__all__ = [
    "ApprovalAck",
    "ApprovalDecision",
    "ApprovalStatus",
    "BatchOutcome",
    "DecisionOutcome",
    "DecisionTemplate",
    "PendingApproval",
    "PollResult",
    "APPROVAL_CHECKPOINT_TYPE",
    "PipelineRun",
    "RunOutcome",
    "TimelineRecord",
]
