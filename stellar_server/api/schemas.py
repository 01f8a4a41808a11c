"""Pydantic schemas shared across API routers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from stellar_server.runner import JobState, JobStatus, LogSlice


class APIMessage(BaseModel):
    """Simple message envelope."""

    message: str


class BuildStartRequest(BaseModel):
    executable: str = Field(min_length=1, description="Resolved executable path")
    args: list[str] = Field(default_factory=list)
    cwd: str | None = Field(default=None, description="Working directory")
    env: dict[str, str] = Field(default_factory=dict, description="Environment overrides")

    @field_validator("executable")
    @classmethod
    def _strip_executable(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Executable path is empty.")
        return value


class BuildStartResponse(BaseModel):
    build_id: str


class BuildStatusResponse(BaseModel):
    status: JobState
    exit_code: int | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class BuildLogsResponse(BaseModel):
    lines: list[str]
    next_cursor: int
    finished: bool


def status_to_response(status: JobStatus) -> BuildStatusResponse:
    return BuildStatusResponse(
        status=status.state,
        exit_code=status.exit_code,
        error=status.error,
        started_at=status.started_at,
        finished_at=status.finished_at,
    )


def logs_to_response(log_slice: LogSlice) -> BuildLogsResponse:
    return BuildLogsResponse(
        lines=list(log_slice.lines),
        next_cursor=log_slice.next_cursor,
        finished=log_slice.finished,
    )


__all__ = [
    "APIMessage",
    "BuildLogsResponse",
    "BuildStartRequest",
    "BuildStartResponse",
    "BuildStatusResponse",
    "logs_to_response",
    "status_to_response",
]
