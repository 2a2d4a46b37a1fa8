"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from pipeline_runner.models.approval import ApprovalStatus

ENV_PREFIX = "PIPELINE_RUNNER_"
ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class MissingConfigurationError(ValueError):
    """Raised when a command needs settings that were never provided."""

    def __init__(self, missing: Tuple[str, ...]) -> None:
        self.missing = missing
        names = ", ".join(f"{ENV_PREFIX}{name.upper()}" for name in missing)
        super().__init__(f"Missing required configuration: {names}")


class Settings(BaseModel):
    """Runner settings loaded from environment variables or .env files."""

    organization: Optional[str] = Field(default=None, description="Azure DevOps organization.")
    project: Optional[str] = Field(default=None, description="Azure DevOps project.")
    token: Optional[str] = Field(default=None, description="Personal access token or OAuth token.")
    auth_scheme: Literal["pat", "bearer"] = Field(
        default="pat",
        description="How the token is sent: Basic auth PAT or Bearer token.",
    )
    branch: str = Field(default="main", description="Default branch to run pipelines on.")
    base_url: str = Field(default="https://dev.azure.com", description="Service root URL.")
    api_version: str = Field(default="7.1", description="REST api-version query parameter.")
    http_timeout: float = Field(default=30.0, description="Per-request timeout in seconds.")
    approval_timeout: float = Field(
        default=10 * 60 * 60,
        description="Seconds to wait for an approval checkpoint to appear.",
    )
    poll_interval: float = Field(default=10.0, description="Seconds between timeline polls.")
    poll_backoff: float = Field(
        default=1.0,
        description="Multiplier applied to the poll interval after each empty poll.",
    )
    poll_max_interval: float = Field(default=60.0, description="Upper bound for the poll interval.")
    approval_status: ApprovalStatus = Field(
        default=ApprovalStatus.APPROVED,
        description="Decision submitted for approvals (approved/rejected).",
    )
    approval_comment: str = Field(default="", description="Comment attached to decisions.")
    stages_to_skip: Tuple[str, ...] = Field(
        default=(),
        description="Stages skipped when triggering a run.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(default="plain", description="Logging format (plain/json).")
    metrics_textfile: Optional[Path] = Field(
        default=None,
        description="Write Prometheus metrics to this file after each command.",
    )

    model_config = ConfigDict(frozen=True)

    def require(self, *names: str) -> None:
        """Raise when any of the named settings is unset or blank."""

        missing = tuple(name for name in names if not str(getattr(self, name) or "").strip())
        if missing:
            raise MissingConfigurationError(missing)


def _parse_env_file(path: Path) -> dict[str, str]:
    payload: dict[str, str] = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, raw_value = line.split("=", 1)
                payload[key.strip()] = raw_value.strip().strip("'\"")
    except FileNotFoundError:
        return {}
    return payload


def _load_env_file_values() -> dict[str, str]:
    values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        values.update(_parse_env_file(candidate))
    return values


def _split_list(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


_STRING_KEYS = (
    "organization",
    "project",
    "token",
    "auth_scheme",
    "branch",
    "base_url",
    "api_version",
    "approval_status",
    "approval_comment",
    "log_level",
    "log_format",
)
_FLOAT_KEYS = (
    "http_timeout",
    "approval_timeout",
    "poll_interval",
    "poll_backoff",
    "poll_max_interval",
)


def _load_from_env() -> dict[str, object]:
    """Load optional overrides from env vars (with .env fallbacks)."""

    file_values = _load_env_file_values()

    def _env(key: str) -> Optional[str]:
        name = f"{ENV_PREFIX}{key.upper()}"
        return os.environ.get(name) or file_values.get(name)

    payload: dict[str, object] = {}
    for key in _STRING_KEYS:
        if (value := _env(key)):
            payload[key] = value.lower() if key in ("auth_scheme", "approval_status") else value
    for key in _FLOAT_KEYS:
        if (value := _env(key)):
            try:
                payload[key] = float(value)
            except ValueError:
                pass
    if (stages := _env("stages_to_skip")):
        payload["stages_to_skip"] = _split_list(stages)
    if (metrics_path := _env("metrics_textfile")):
        payload["metrics_textfile"] = Path(metrics_path)
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
