"""Compose the client, poller and deduplicator into the user-facing flows."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Set

from pipeline_runner import metrics
from pipeline_runner.agents.approval_deduplicator import ApprovalDeduplicator
from pipeline_runner.agents.approval_poller import ApprovalPoller, Deadline
from pipeline_runner.integrations.azure_devops import (
    AuthenticationError,
    AzureDevOpsClient,
    PipelineServiceError,
)
from pipeline_runner.models.approval import (
    ApprovalAck,
    ApprovalDecision,
    BatchOutcome,
    DecisionOutcome,
    DecisionTemplate,
    PendingApproval,
)
from pipeline_runner.models.run import PipelineRun, RunOutcome

logger = logging.getLogger(__name__)


class ApprovalsOrchestrator:
    """Trigger runs and resolve their approval gates."""

    def __init__(
        self,
        client: AzureDevOpsClient,
        poller: Optional[ApprovalPoller] = None,
        deduplicator: Optional[ApprovalDeduplicator] = None,
    ) -> None:
        self._client = client
        self._poller = poller or ApprovalPoller(client)
        self._deduplicator = deduplicator or ApprovalDeduplicator()

    def trigger(
        self,
        pipeline_id: int,
        branch: str,
        stages_to_skip: Iterable[str] = (),
        variables: Optional[Mapping[str, Any]] = None,
    ) -> PipelineRun:
        """Queue a run without waiting for its approvals."""

        return self._client.trigger_run(pipeline_id, branch, stages_to_skip, variables)

    def run_and_approve(
        self,
        pipeline_id: int,
        branch: str,
        stages_to_skip: Iterable[str],
        deadline: Deadline,
        template: DecisionTemplate,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> RunOutcome:
        """
        Trigger a run, wait for its approval checkpoint and submit one decision.

        A timeout is a normal outcome: nothing is submitted and the returned state is
        ``timed_out``. Trigger, polling and submission failures propagate.
        """

        run = self.trigger(pipeline_id, branch, stages_to_skip, variables)
        poll = self._poller.wait_for_approval(run.run_id, deadline)
        if not poll.found or poll.checkpoint_id is None:
            return RunOutcome(
                run=run,
                state="timed_out",
                attempts=poll.attempts,
                elapsed_seconds=poll.elapsed_seconds,
            )

        decision = template.for_approval(poll.checkpoint_id)
        ack = self._submit(decision)
        return RunOutcome(
            run=run,
            state="decided",
            decision=decision,
            ack=ack,
            attempts=poll.attempts,
            elapsed_seconds=poll.elapsed_seconds,
        )

    def approve(self, approval_id: str, template: DecisionTemplate) -> ApprovalAck:
        """Submit a decision for a known approval id."""

        return self._submit(template.for_approval(approval_id))

    def list_pending(self) -> List[PendingApproval]:
        """Pending approvals across all pipelines, newest first."""

        approvals = self._client.list_pending_approvals()
        return sorted(approvals, key=lambda approval: approval.created_on, reverse=True)

    def approve_all_latest(self, template: DecisionTemplate) -> BatchOutcome:
        """
        Resolve the newest pending approval of every pipeline.

        Submissions run in pipeline-name order. A failed submission is recorded and the
        batch moves on; only an authentication failure stops it.
        """

        latest = self._deduplicator.run(self._client.list_pending_approvals())
        logger.info("Resolving %d pending approval(s) as %s", len(latest), template.status.value)

        outcome = BatchOutcome()
        submitted: Set[str] = set()
        for pipeline_name in sorted(latest):
            approval = latest[pipeline_name]
            if approval.approval_id in submitted:
                continue
            submitted.add(approval.approval_id)

            decision = template.for_approval(approval.approval_id)
            try:
                ack = self._submit(decision)
            except AuthenticationError:
                _log_aborted_batch(outcome, approval)
                raise
            except PipelineServiceError as exc:
                logger.error(
                    "Could not resolve approval %s for %s: %s",
                    approval.approval_id,
                    pipeline_name,
                    exc,
                )
                outcome.outcomes.append(
                    DecisionOutcome(approval=approval, decision=decision, error=str(exc))
                )
                continue
            outcome.outcomes.append(DecisionOutcome(approval=approval, decision=decision, ack=ack))
        return outcome

    def _submit(self, decision: ApprovalDecision) -> ApprovalAck:
        status = decision.status.value
        try:
            ack = self._client.submit_decision(decision)
        except PipelineServiceError:
            metrics.APPROVAL_DECISIONS.labels(status=status, outcome="failed").inc()
            raise
        metrics.APPROVAL_DECISIONS.labels(status=status, outcome="submitted").inc()
        logger.info("Approval %s marked %s", decision.approval_id, status)
        return ack


def _log_aborted_batch(outcome: BatchOutcome, current: PendingApproval) -> None:
    done = ", ".join(
        f"{item.approval.approval_id} ({'submitted' if item.succeeded else 'failed'})"
        for item in outcome.outcomes
    )
    logger.error(
        "Batch aborted by authentication failure at approval %s; already processed: %s",
        current.approval_id,
        done or "none",
    )


__all__ = ["ApprovalsOrchestrator"]
