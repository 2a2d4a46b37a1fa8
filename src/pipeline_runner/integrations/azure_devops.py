"""Azure DevOps REST client for pipeline runs, timelines and approvals."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from pipeline_runner import metrics
from pipeline_runner.config import Settings
from pipeline_runner.models.approval import ApprovalAck, ApprovalDecision, PendingApproval
from pipeline_runner.models.run import PipelineRun, TimelineRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class PipelineServiceError(RuntimeError):
    """Base class for failures talking to the pipeline service."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(PipelineServiceError):
    """Connection failure, timeout, throttling or a 5xx response."""


class AuthenticationError(PipelineServiceError):
    """The credential was rejected."""


class NotFoundError(PipelineServiceError):
    """The organization, project, pipeline, run or approval does not exist."""


class MalformedResponseError(PipelineServiceError):
    """The response body is not JSON or lacks a required field."""


class ApiRequestError(PipelineServiceError):
    """Any other non-success response."""


def _auth_header(token: str, scheme: str) -> str:
    if scheme == "bearer":
        return f"Bearer {token}"
    encoded = base64.b64encode(f":{token}".encode("ascii")).decode("ascii")
    return f"Basic {encoded}"


def _branch_ref(branch: str) -> str:
    return branch if branch.startswith("refs/") else f"refs/heads/{branch}"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return str(body)[:200]


def _require(payload: Any, key: str, operation: str) -> Any:
    if not isinstance(payload, Mapping) or payload.get(key) is None:
        raise MalformedResponseError(f"{operation}: response is missing '{key}'")
    return payload[key]


class AzureDevOpsClient:
    """Thin synchronous wrapper around the pipelines and approvals endpoints."""

    def __init__(
        self,
        *,
        organization: str,
        project: str,
        token: str,
        auth_scheme: str = "pat",
        base_url: str = "https://dev.azure.com",
        api_version: str = "7.1",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_version = api_version
        root = f"{base_url.rstrip('/')}/{quote(organization)}/{quote(project)}/_apis"
        self._http = httpx.Client(
            base_url=root,
            headers={
                "Authorization": _auth_header(token, auth_scheme),
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "AzureDevOpsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def trigger_run(
        self,
        pipeline_id: int,
        branch: str,
        stages_to_skip: Iterable[str] = (),
        variables: Optional[Mapping[str, Any]] = None,
    ) -> PipelineRun:
        """Queue a new run of ``pipeline_id`` on ``branch``."""

        ref = _branch_ref(branch)
        skipped = tuple(stages_to_skip)
        body: Dict[str, Any] = {
            "resources": {"repositories": {"self": {"refName": ref}}},
            "stagesToSkip": list(skipped),
        }
        if variables:
            body["variables"] = {name: {"value": str(value)} for name, value in variables.items()}

        payload = self._request("trigger_run", "POST", f"pipelines/{pipeline_id}/runs", json=body)
        run_id = _require(payload, "id", "trigger_run")
        web_url = ((payload.get("_links") or {}).get("web") or {}).get("href")
        try:
            run = PipelineRun(
                run_id=run_id,
                pipeline_id=pipeline_id,
                name=payload.get("name"),
                state=payload.get("state"),
                branch_ref=ref,
                stages_to_skip=skipped,
                web_url=web_url,
            )
        except ValidationError as exc:
            raise MalformedResponseError(f"trigger_run: unexpected run payload: {exc}") from exc
        logger.info("Triggered pipeline %s run %s on %s", pipeline_id, run.run_id, ref)
        return run

    def fetch_timeline(self, run_id: int) -> List[TimelineRecord]:
        """Return the timeline records of a run in service order."""

        payload = self._request("fetch_timeline", "GET", f"build/builds/{run_id}/timeline")
        raw_records = _require(payload, "records", "fetch_timeline")
        if not isinstance(raw_records, list):
            raise MalformedResponseError("fetch_timeline: 'records' is not a list")

        records: List[TimelineRecord] = []
        for entry in raw_records:
            if not isinstance(entry, Mapping) or not entry.get("id") or not entry.get("type"):
                logger.debug("Skipping incomplete timeline record in run %s: %r", run_id, entry)
                continue
            records.append(
                TimelineRecord(
                    record_id=str(entry["id"]),
                    record_type=str(entry["type"]),
                    name=entry.get("name"),
                    state=entry.get("state"),
                )
            )
        return records

    def list_pending_approvals(self) -> List[PendingApproval]:
        """Return every approval in the project still waiting for a decision."""

        payload = self._request(
            "list_pending_approvals",
            "GET",
            "pipelines/approvals",
            params={"state": "pending"},
        )
        values = _require(payload, "value", "list_pending_approvals")
        if not isinstance(values, list):
            raise MalformedResponseError("list_pending_approvals: 'value' is not a list")

        approvals: List[PendingApproval] = []
        for entry in values:
            approval_id = _require(entry, "id", "list_pending_approvals")
            pipeline = _require(entry, "pipeline", "list_pending_approvals")
            links = entry.get("_links") or {}
            try:
                approvals.append(
                    PendingApproval(
                        approval_id=str(approval_id),
                        pipeline_name=_require(pipeline, "name", "list_pending_approvals"),
                        created_on=_require(entry, "createdOn", "list_pending_approvals"),
                        min_required_approvers=(
                            1
                            if entry.get("minRequiredApprovers") is None
                            else entry["minRequiredApprovers"]
                        ),
                        detail_url=(links.get("self") or {}).get("href"),
                    )
                )
            except ValidationError as exc:
                raise MalformedResponseError(
                    f"list_pending_approvals: invalid approval {approval_id}: {exc}"
                ) from exc
        return approvals

    def submit_decision(self, decision: ApprovalDecision) -> ApprovalAck:
        """Approve or reject a single approval."""

        payload = self._request(
            "submit_decision",
            "PATCH",
            "pipelines/approvals",
            json=[decision.to_payload()],
        )
        values = _require(payload, "value", "submit_decision")
        for entry in values if isinstance(values, list) else []:
            if isinstance(entry, Mapping) and str(entry.get("id")) == decision.approval_id:
                return ApprovalAck(
                    approval_id=decision.approval_id,
                    status=str(entry.get("status") or decision.status.value),
                )
        raise MalformedResponseError(
            f"submit_decision: approval {decision.approval_id} missing from response"
        )

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> Any:
        query = {"api-version": self._api_version, **(params or {})}
        try:
            response = self._http.request(method, path, params=query, json=json)
        except httpx.RequestError as exc:
            metrics.API_REQUESTS.labels(operation=operation, outcome="transport_error").inc()
            raise TransportError(f"{operation}: {exc.__class__.__name__}: {exc}") from exc

        try:
            self._raise_for_status(operation, response)
            try:
                payload = response.json()
            except ValueError as exc:
                raise MalformedResponseError(f"{operation}: response is not JSON") from exc
        except PipelineServiceError as exc:
            metrics.API_REQUESTS.labels(operation=operation, outcome=type(exc).__name__).inc()
            raise
        metrics.API_REQUESTS.labels(operation=operation, outcome="ok").inc()
        return payload

    @staticmethod
    def _raise_for_status(operation: str, response: httpx.Response) -> None:
        status = response.status_code
        # A rejected PAT is answered with 203 and the HTML sign-in page.
        content_type = response.headers.get("content-type", "")
        if status == 203 and "html" in content_type:
            raise AuthenticationError(f"{operation}: credential rejected", status_code=status)
        if status < 400:
            return

        detail = _error_detail(response)
        message = f"{operation}: HTTP {status}: {detail}"
        if status in (401, 403):
            raise AuthenticationError(message, status_code=status)
        if status == 404:
            raise NotFoundError(message, status_code=status)
        if status == 429 or status >= 500:
            raise TransportError(message, status_code=status)
        raise ApiRequestError(message, status_code=status)


def build_client(settings: Settings, *, transport: Optional[httpx.BaseTransport] = None) -> AzureDevOpsClient:
    """Create a client from settings, failing fast on missing credentials."""

    settings.require("organization", "project", "token")
    return AzureDevOpsClient(
        organization=settings.organization or "",
        project=settings.project or "",
        token=settings.token or "",
        auth_scheme=settings.auth_scheme,
        base_url=settings.base_url,
        api_version=settings.api_version,
        timeout=settings.http_timeout,
        transport=transport,
    )
