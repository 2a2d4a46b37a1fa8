"""Wait for an approval checkpoint to show up in a run's timeline."""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Callable, Iterable, Optional, Union

from pipeline_runner import metrics
from pipeline_runner.integrations.azure_devops import (
    AzureDevOpsClient,
    MalformedResponseError,
    TransportError,
)
from pipeline_runner.models.approval import PollResult
from pipeline_runner.models.run import TimelineRecord

logger = logging.getLogger(__name__)

Deadline = Union[float, int, timedelta]


def first_approval_checkpoint(records: Iterable[TimelineRecord]) -> Optional[str]:
    """Return the id of the first approval checkpoint in service order."""

    for record in records:
        if record.is_approval_checkpoint:
            return record.record_id
    return None


def _deadline_seconds(deadline: Deadline) -> float:
    seconds = deadline.total_seconds() if isinstance(deadline, timedelta) else float(deadline)
    if seconds <= 0:
        raise ValueError(f"deadline must be positive, got {deadline!r}")
    return seconds


class ApprovalPoller:
    """
    Poll a run's timeline until an approval checkpoint appears or the deadline passes.

    Elapsed time is checked before every request, so a request already in flight when
    the deadline passes is allowed to finish but no further request is started. Transport
    failures and malformed responses count as an empty poll; authentication and
    not-found errors propagate to the caller.
    """

    def __init__(
        self,
        client: AzureDevOpsClient,
        *,
        poll_interval: float = 10.0,
        backoff_factor: float = 1.0,
        max_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        self._client = client
        self._poll_interval = poll_interval
        self._backoff_factor = backoff_factor
        self._max_interval = max(max_interval, poll_interval)
        self._clock = clock
        self._sleep = sleep

    def wait_for_approval(self, run_id: int, deadline: Deadline) -> PollResult:
        limit = _deadline_seconds(deadline)
        started = self._clock()
        interval = self._poll_interval
        attempts = 0

        logger.info("Waiting up to %.0fs for an approval checkpoint on run %s", limit, run_id)
        while True:
            elapsed = self._clock() - started
            if elapsed >= limit:
                break

            attempts += 1
            checkpoint_id = self._poll_once(run_id, attempts)
            if checkpoint_id is not None:
                elapsed = self._clock() - started
                logger.info(
                    "Found approval %s on run %s after %d poll(s)", checkpoint_id, run_id, attempts
                )
                return PollResult(
                    state="found",
                    checkpoint_id=checkpoint_id,
                    attempts=attempts,
                    elapsed_seconds=elapsed,
                )

            remaining = limit - (self._clock() - started)
            if remaining <= 0:
                break
            self._sleep(min(interval, remaining))
            interval = min(interval * self._backoff_factor, self._max_interval)

        elapsed = self._clock() - started
        logger.warning(
            "No approval checkpoint on run %s within %.0fs (%d poll(s))", run_id, limit, attempts
        )
        return PollResult(state="timed_out", attempts=attempts, elapsed_seconds=elapsed)

    def _poll_once(self, run_id: int, attempt: int) -> Optional[str]:
        try:
            records = self._client.fetch_timeline(run_id)
        except (TransportError, MalformedResponseError) as exc:
            metrics.POLL_ITERATIONS.labels(result="error").inc()
            logger.warning("Timeline poll %d for run %s failed, retrying: %s", attempt, run_id, exc)
            return None

        checkpoint_id = first_approval_checkpoint(records)
        metrics.POLL_ITERATIONS.labels(result="found" if checkpoint_id else "empty").inc()
        logger.debug(
            "Timeline poll %d for run %s returned %d record(s)", attempt, run_id, len(records)
        )
        return checkpoint_id


__all__ = ["ApprovalPoller", "first_approval_checkpoint"]
