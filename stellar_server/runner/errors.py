"""Exceptions raised by the job supervisor."""

from __future__ import annotations

__all__ = [
    "JobNotFoundError",
    "JobStillRunning",
    "SpawnFailedError",
    "SupervisorBusyError",
    "SupervisorError",
]


class SupervisorError(RuntimeError):
    """Base class for supervisor failures."""


class SpawnFailedError(SupervisorError):
    """Raised when a build process cannot be spawned."""


class SupervisorBusyError(SupervisorError):
    """Raised when the concurrent job limit has been reached."""


class JobStillRunning(SupervisorError):
    """Raised when an operation requires a finished job."""


class JobNotFoundError(SupervisorError, LookupError):
    """Raised when a job identifier is unknown to the supervisor."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Build {job_id} not found")
        self.job_id = job_id
