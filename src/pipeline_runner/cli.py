"""Command-line interface for the pipeline runner."""

from __future__ import annotations

import json
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import typer
from pydantic import ValidationError

from pipeline_runner import metrics
from pipeline_runner.agents import ApprovalPoller, ApprovalsOrchestrator
from pipeline_runner.config import MissingConfigurationError, Settings, get_settings
from pipeline_runner.integrations.azure_devops import PipelineServiceError, build_client
from pipeline_runner.logging_utils import configure_logging
from pipeline_runner.models.approval import ApprovalStatus, DecisionTemplate

app = typer.Typer(help="Trigger Azure DevOps pipeline runs and resolve their approval gates.")

EXIT_SERVICE_ERROR = 1
EXIT_USAGE_ERROR = 2


def _fail(message: str, code: int) -> typer.Exit:
    typer.secho(message, err=True, fg=typer.colors.RED)
    return typer.Exit(code=code)


@app.callback()
def configure(
    ctx: typer.Context,
    org: Optional[str] = typer.Option(None, "--org", help="Azure DevOps organization."),
    project: Optional[str] = typer.Option(None, "--project", help="Azure DevOps project."),
    token: Optional[str] = typer.Option(None, "--token", help="Personal access token."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the log level."),
) -> None:
    """Resolve settings from the environment and command-line overrides."""

    overrides = {
        key: value
        for key, value in {
            "organization": org,
            "project": project,
            "token": token,
            "log_level": log_level,
        }.items()
        if value
    }
    try:
        settings = get_settings().model_copy(update=overrides)
    except ValidationError as exc:
        raise _fail(f"Invalid configuration: {exc}", EXIT_USAGE_ERROR) from exc
    configure_logging(settings.log_level, settings.log_format, [settings.token or ""])
    ctx.obj = settings


@contextmanager
def _orchestrator(settings: Settings) -> Iterator[ApprovalsOrchestrator]:
    try:
        client = build_client(settings)
    except MissingConfigurationError as exc:
        raise _fail(str(exc), EXIT_USAGE_ERROR) from exc

    poller = ApprovalPoller(
        client,
        poll_interval=settings.poll_interval,
        backoff_factor=settings.poll_backoff,
        max_interval=settings.poll_max_interval,
    )
    try:
        yield ApprovalsOrchestrator(client, poller)
    except PipelineServiceError as exc:
        raise _fail(f"Error: {exc}", EXIT_SERVICE_ERROR) from exc
    finally:
        client.close()
        if settings.metrics_textfile is not None:
            metrics.export_textfile(settings.metrics_textfile)


def _template(
    settings: Settings,
    status: Optional[ApprovalStatus],
    comment: Optional[str],
) -> DecisionTemplate:
    return DecisionTemplate(
        status=status or settings.approval_status,
        comment=settings.approval_comment if comment is None else comment,
    )


def _parse_variables(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise _fail(f"Error parsing variables JSON: {exc}", EXIT_USAGE_ERROR) from exc
    if not isinstance(parsed, dict) or any(
        isinstance(value, (dict, list)) for value in parsed.values()
    ):
        raise _fail("Variables must be a JSON object of scalar values.", EXIT_USAGE_ERROR)
    return parsed


StatusOption = typer.Option(None, "--status", help="Decision to submit (approved/rejected).")
CommentOption = typer.Option(None, "--comment", help="Comment attached to the decision.")


@app.command("run-pipeline")
def run_pipeline(
    ctx: typer.Context,
    pipeline_id: int = typer.Option(..., "--pipeline-id", help="ID of the pipeline to run."),
    branch: Optional[str] = typer.Option(None, "--branch", help="Branch to run the pipeline on."),
    skip_stage: Optional[List[str]] = typer.Option(
        None, "--skip-stage", help="Stage to skip; repeat for several stages."
    ),
    variables: Optional[str] = typer.Option(
        None, "--variables", help="JSON object of variables to pass to the run."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the approval checkpoint."
    ),
    status: Optional[ApprovalStatus] = StatusOption,
    comment: Optional[str] = CommentOption,
    no_wait: bool = typer.Option(False, "--no-wait", help="Only trigger the run."),
) -> None:
    """Trigger a pipeline run, wait for its approval checkpoint and resolve it."""

    settings: Settings = ctx.obj
    run_variables = _parse_variables(variables)
    stages = tuple(skip_stage) if skip_stage else settings.stages_to_skip
    target_branch = branch or settings.branch
    deadline = timeout if timeout is not None else settings.approval_timeout
    if deadline <= 0:
        raise _fail("--timeout must be greater than 0.", EXIT_USAGE_ERROR)

    typer.echo(f"Triggering pipeline {pipeline_id} on branch {target_branch}...")
    with _orchestrator(settings) as orchestrator:
        if no_wait:
            run = orchestrator.trigger(pipeline_id, target_branch, stages, run_variables)
            typer.echo("Pipeline run triggered successfully!")
            typer.echo(f"Run ID: {run.run_id}")
            typer.echo(f"Pipeline name: {run.name}")
            typer.echo(f"State: {run.state}")
            if run.web_url:
                typer.echo(f"URL: {run.web_url}")
            return

        outcome = orchestrator.run_and_approve(
            pipeline_id,
            target_branch,
            stages,
            deadline,
            _template(settings, status, comment),
            run_variables,
        )

    typer.echo(f"Run ID: {outcome.run.run_id}")
    if outcome.state == "timed_out":
        typer.echo(
            f"No approval checkpoint appeared within {deadline:.0f}s "
            f"({outcome.attempts} poll(s)); nothing was submitted."
        )
        return
    if outcome.ack is not None:
        typer.echo(f"Approval {outcome.ack.approval_id} marked {outcome.ack.status}.")


@app.command()
def approve(
    ctx: typer.Context,
    approval_id: str = typer.Option(..., "--approval-id", help="Approval to resolve."),
    status: Optional[ApprovalStatus] = StatusOption,
    comment: Optional[str] = CommentOption,
) -> None:
    """Approve or reject a single approval by id."""

    settings: Settings = ctx.obj
    with _orchestrator(settings) as orchestrator:
        ack = orchestrator.approve(approval_id, _template(settings, status, comment))
    typer.echo(f"Approval {ack.approval_id} marked {ack.status}.")


@app.command("list-approvals")
def list_approvals(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print approvals as JSON."),
) -> None:
    """List pending approvals across all pipelines, newest first."""

    settings: Settings = ctx.obj
    with _orchestrator(settings) as orchestrator:
        approvals = orchestrator.list_pending()

    if as_json:
        typer.echo(json.dumps([approval.model_dump(mode="json") for approval in approvals], indent=2))
        return
    if not approvals:
        typer.echo("No pending approvals.")
        return
    for approval in approvals:
        typer.echo(
            f"{approval.approval_id}  {approval.pipeline_name}  "
            f"{approval.created_on.isoformat()}  "
            f"min approvers: {approval.min_required_approvers}  {approval.detail_url or ''}".rstrip()
        )


@app.command("approve-latest")
def approve_latest(
    ctx: typer.Context,
    status: Optional[ApprovalStatus] = StatusOption,
    comment: Optional[str] = CommentOption,
) -> None:
    """Resolve the most recent pending approval of every pipeline."""

    settings: Settings = ctx.obj
    with _orchestrator(settings) as orchestrator:
        batch = orchestrator.approve_all_latest(_template(settings, status, comment))

    if not batch.outcomes:
        typer.echo("No pending approvals.")
        return
    for outcome in batch.outcomes:
        name = outcome.approval.pipeline_name
        if outcome.succeeded:
            typer.echo(f"{name}: approval {outcome.approval.approval_id} {outcome.decision.status.value}")
        else:
            typer.secho(
                f"{name}: approval {outcome.approval.approval_id} failed: {outcome.error}",
                err=True,
                fg=typer.colors.RED,
            )
    if not batch.succeeded:
        raise _fail(
            f"{len(batch.failures)} of {len(batch.outcomes)} approval(s) failed.",
            EXIT_SERVICE_ERROR,
        )


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the ``pipeline-runner`` console script."""
    app(prog_name="pipeline-runner", args=argv)


if __name__ == "__main__":
    main()
