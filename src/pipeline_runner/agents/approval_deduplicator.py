"""Reduce pending approvals to the most recent one per pipeline."""

from __future__ import annotations

from typing import Dict, Iterable

from pipeline_runner.agents.base import Agent
from pipeline_runner.models.approval import PendingApproval


def reduce_to_latest_per_pipeline(
    approvals: Iterable[PendingApproval],
) -> Dict[str, PendingApproval]:
    """
    Map each pipeline name to its most recently created pending approval.

    A stored candidate is only replaced by one with a strictly later ``created_on``,
    so when timestamps tie the approval seen first in ``approvals`` wins. The service
    does not promise a total order on ``created_on``, which makes this tie-break part
    of the contract. The order of the returned mapping carries no meaning; callers
    that display or submit entries sort them explicitly.
    """

    latest: Dict[str, PendingApproval] = {}
    for approval in approvals:
        current = latest.get(approval.pipeline_name)
        if current is None or approval.created_on > current.created_on:
            latest[approval.pipeline_name] = approval
    return latest


class ApprovalDeduplicator(Agent[Iterable[PendingApproval], Dict[str, PendingApproval]]):
    """Keep only the newest pending approval of each pipeline."""

    def run(self, payload: Iterable[PendingApproval]) -> Dict[str, PendingApproval]:
        return reduce_to_latest_per_pipeline(payload)


__all__ = ["ApprovalDeduplicator", "reduce_to_latest_per_pipeline"]
