"""Shared pytest fixtures for the pipeline runner test suite."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

import pytest

from pipeline_runner.config import get_settings
from pipeline_runner.integrations.azure_devops import PipelineServiceError
from pipeline_runner.models.approval import ApprovalAck, ApprovalDecision, PendingApproval
from pipeline_runner.models.run import PipelineRun, TimelineRecord

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

TimelineStep = Union[List[TimelineRecord], PipelineServiceError]


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self, request_cost: float = 0.0) -> None:
        self.now = 0.0
        self.request_cost = request_cost
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePipelineClient:
    """In-memory stand-in for the Azure DevOps client."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock
        self.run_id = 101
        self.timeline: List[TimelineStep] = []
        self.approvals: List[PendingApproval] = []
        self.submit_failures: Dict[str, PipelineServiceError] = {}
        self.triggered: List[dict] = []
        self.timeline_calls: List[int] = []
        self.submitted: List[ApprovalDecision] = []
        self.closed = False

    def trigger_run(self, pipeline_id, branch, stages_to_skip=(), variables=None) -> PipelineRun:
        self.triggered.append(
            {
                "pipeline_id": pipeline_id,
                "branch": branch,
                "stages_to_skip": tuple(stages_to_skip),
                "variables": variables,
            }
        )
        return PipelineRun(
            run_id=self.run_id,
            pipeline_id=pipeline_id,
            name="20240501.1",
            state="inProgress",
            branch_ref=f"refs/heads/{branch}",
            stages_to_skip=tuple(stages_to_skip),
        )

    def fetch_timeline(self, run_id: int) -> List[TimelineRecord]:
        self.timeline_calls.append(run_id)
        if self.clock is not None:
            self.clock.now += self.clock.request_cost
        # The last configured step repeats once the script runs out.
        step = self.timeline.pop(0) if len(self.timeline) > 1 else (self.timeline or [[]])[0]
        if isinstance(step, PipelineServiceError):
            raise step
        return step

    def list_pending_approvals(self) -> List[PendingApproval]:
        return list(self.approvals)

    def submit_decision(self, decision: ApprovalDecision) -> ApprovalAck:
        self.submitted.append(decision)
        if decision.approval_id in self.submit_failures:
            raise self.submit_failures[decision.approval_id]
        return ApprovalAck(approval_id=decision.approval_id, status=decision.status.value)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep host environment variables and .env files out of every test."""

    for key in list(os.environ):
        if key.startswith("PIPELINE_RUNNER_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_client(fake_clock) -> FakePipelineClient:
    return FakePipelineClient(clock=fake_clock)


@pytest.fixture()
def make_approval() -> Callable[..., PendingApproval]:
    """Build pending approvals offset in minutes from a fixed base time."""

    def _make(approval_id: str, pipeline_name: str, minutes: int = 0) -> PendingApproval:
        return PendingApproval(
            approval_id=approval_id,
            pipeline_name=pipeline_name,
            created_on=BASE_TIME + timedelta(minutes=minutes),
        )

    return _make
