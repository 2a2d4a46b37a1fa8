"""Tests for the single-run and batch approval flows."""

from __future__ import annotations

import logging

import pytest

from pipeline_runner.agents.approval_deduplicator import ApprovalDeduplicator
from pipeline_runner.agents.approval_poller import ApprovalPoller
from pipeline_runner.agents.orchestrator import ApprovalsOrchestrator
from pipeline_runner.integrations.azure_devops import (
    ApiRequestError,
    AuthenticationError,
    NotFoundError,
)
from pipeline_runner.models.approval import ApprovalDecision, ApprovalStatus, DecisionTemplate
from pipeline_runner.models.run import TimelineRecord

APPROVAL = TimelineRecord(record_id="abc", record_type="Checkpoint.Approval")


@pytest.fixture()
def orchestrator(fake_client, fake_clock) -> ApprovalsOrchestrator:
    poller = ApprovalPoller(fake_client, poll_interval=1.0, clock=fake_clock, sleep=fake_clock.sleep)
    return ApprovalsOrchestrator(fake_client, poller)


def test_run_and_approve_submits_single_decision(orchestrator, fake_client):
    fake_client.timeline = [[TimelineRecord(record_id="t", record_type="Task"), APPROVAL]]

    outcome = orchestrator.run_and_approve(
        pipeline_id=42,
        branch="main",
        stages_to_skip=[],
        deadline=5,
        template=DecisionTemplate(status=ApprovalStatus.APPROVED, comment="ok"),
    )

    assert outcome.state == "decided"
    assert outcome.run.run_id == 101
    assert fake_client.timeline_calls == [101]
    assert fake_client.submitted == [
        ApprovalDecision(approval_id="abc", status=ApprovalStatus.APPROVED, comment="ok")
    ]
    assert fake_client.submitted[0].to_payload() == {
        "approvalId": "abc",
        "status": "approved",
        "comment": "ok",
    }


def test_run_and_approve_passes_run_parameters(orchestrator, fake_client):
    fake_client.timeline = [[APPROVAL]]

    orchestrator.run_and_approve(
        7,
        "release/1.2",
        ["Lint", "ProdDeploy"],
        30,
        DecisionTemplate(),
        variables={"version": "1.2.0"},
    )

    assert fake_client.triggered == [
        {
            "pipeline_id": 7,
            "branch": "release/1.2",
            "stages_to_skip": ("Lint", "ProdDeploy"),
            "variables": {"version": "1.2.0"},
        }
    ]


def test_run_and_approve_timeout_submits_nothing(orchestrator, fake_client, fake_clock):
    fake_client.timeline = [[]]

    outcome = orchestrator.run_and_approve(42, "main", [], 5, DecisionTemplate())

    assert outcome.state == "timed_out"
    assert outcome.decision is None
    assert outcome.elapsed_seconds >= 5
    assert fake_client.submitted == []


def test_run_and_approve_propagates_missing_run(orchestrator, fake_client):
    fake_client.timeline = [NotFoundError("build 101 not found", status_code=404)]

    with pytest.raises(NotFoundError):
        orchestrator.run_and_approve(42, "main", [], 5, DecisionTemplate())
    assert fake_client.submitted == []


def test_approve_all_latest_continues_past_failures(orchestrator, fake_client, make_approval):
    fake_client.approvals = [
        make_approval("a-old", "alpha", minutes=1),
        make_approval("a-new", "alpha", minutes=9),
        make_approval("b1", "bravo", minutes=3),
        make_approval("c1", "charlie", minutes=4),
    ]
    fake_client.submit_failures["b1"] = ApiRequestError("HTTP 400: already resolved", status_code=400)

    batch = orchestrator.approve_all_latest(DecisionTemplate(comment="bulk"))

    assert [d.approval_id for d in fake_client.submitted] == ["a-new", "b1", "c1"]
    assert [o.approval.approval_id for o in batch.outcomes] == ["a-new", "b1", "c1"]
    assert [o.succeeded for o in batch.outcomes] == [True, False, True]
    assert "already resolved" in batch.failures[0].error
    assert not batch.succeeded


def test_approve_all_latest_with_nothing_pending(orchestrator, fake_client):
    batch = orchestrator.approve_all_latest(DecisionTemplate())

    assert batch.outcomes == []
    assert batch.succeeded
    assert fake_client.submitted == []


def test_approve_all_latest_stops_on_authentication_failure(
    orchestrator, fake_client, make_approval
):
    fake_client.approvals = [make_approval("a1", "alpha"), make_approval("b1", "bravo")]
    fake_client.submit_failures["a1"] = AuthenticationError("credential rejected", status_code=401)

    with pytest.raises(AuthenticationError):
        orchestrator.approve_all_latest(DecisionTemplate())
    assert [d.approval_id for d in fake_client.submitted] == ["a1"]


def test_authentication_abort_logs_already_processed_approvals(
    orchestrator, fake_client, make_approval, caplog
):
    fake_client.approvals = [
        make_approval("a1", "alpha"),
        make_approval("b1", "bravo"),
        make_approval("c1", "charlie"),
    ]
    fake_client.submit_failures["b1"] = ApiRequestError("HTTP 409", status_code=409)
    fake_client.submit_failures["c1"] = AuthenticationError("credential rejected", status_code=401)

    with caplog.at_level(logging.ERROR, logger="pipeline_runner.agents.orchestrator"):
        with pytest.raises(AuthenticationError):
            orchestrator.approve_all_latest(DecisionTemplate())

    aborted = [r for r in caplog.records if "aborted" in r.getMessage()]
    assert len(aborted) == 1
    message = aborted[0].getMessage()
    assert "at approval c1" in message
    assert "a1 (submitted)" in message
    assert "b1 (failed)" in message


def test_approve_all_latest_uses_injected_deduplicator(fake_client, make_approval):
    class KeepEverything(ApprovalDeduplicator):
        def run(self, payload):
            return {f"{a.pipeline_name}/{a.approval_id}": a for a in payload}

    fake_client.approvals = [
        make_approval("a1", "alpha", minutes=1),
        make_approval("a2", "alpha", minutes=2),
    ]
    orchestrator = ApprovalsOrchestrator(fake_client, deduplicator=KeepEverything())

    result = orchestrator.approve_all_latest(DecisionTemplate())

    assert [o.approval.approval_id for o in result.outcomes] == ["a1", "a2"]


def test_approve_single_uses_template(orchestrator, fake_client):
    ack = orchestrator.approve("xyz", DecisionTemplate(status=ApprovalStatus.REJECTED, comment="no"))

    assert ack.status == "rejected"
    assert fake_client.submitted[0].comment == "no"


def test_list_pending_is_newest_first(orchestrator, fake_client, make_approval):
    fake_client.approvals = [
        make_approval("1", "alpha", minutes=1),
        make_approval("3", "bravo", minutes=3),
        make_approval("2", "alpha", minutes=2),
    ]

    assert [a.approval_id for a in orchestrator.list_pending()] == ["3", "2", "1"]
