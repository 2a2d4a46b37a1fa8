"""Prometheus metrics definitions for the pipeline runner."""

from __future__ import annotations

from pathlib import Path

from prometheus_client import REGISTRY, Counter, write_to_textfile

API_REQUESTS = Counter(
    "pipeline_runner_api_requests_total",
    "Requests sent to the pipeline service by operation and outcome",
    ["operation", "outcome"],
)

POLL_ITERATIONS = Counter(
    "pipeline_runner_poll_iterations_total",
    "Timeline polls performed while waiting for an approval checkpoint",
    ["result"],
)

APPROVAL_DECISIONS = Counter(
    "pipeline_runner_approval_decisions_total",
    "Approval decisions submitted by status and outcome",
    ["status", "outcome"],
)


def export_textfile(path: Path) -> None:
    """Dump the default registry for a node-exporter textfile collector."""

    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)


__all__ = [
    "API_REQUESTS",
    "POLL_ITERATIONS",
    "APPROVAL_DECISIONS",
    "export_textfile",
]
