"""Polling, deduplication and orchestration of approval gates."""

from pipeline_runner.agents.approval_deduplicator import (
    ApprovalDeduplicator,
    reduce_to_latest_per_pipeline,
)
from pipeline_runner.agents.approval_poller import ApprovalPoller, first_approval_checkpoint
from pipeline_runner.agents.base import Agent
from pipeline_runner.agents.orchestrator import ApprovalsOrchestrator

__all__ = [
    "Agent",
    "ApprovalDeduplicator",
    "ApprovalPoller",
    "ApprovalsOrchestrator",
    "first_approval_checkpoint",
    "reduce_to_latest_per_pipeline",
]
