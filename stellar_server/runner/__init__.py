"""Job supervisor, job table and log buffer."""

from .errors import (
    JobNotFoundError,
    JobStillRunning,
    SpawnFailedError,
    SupervisorBusyError,
    SupervisorError,
)
from .jobs import JobRecord, JobState, JobStatus, JobTable, LogEvent, LogSlice
from .log_buffer import LogBuffer
from .supervisor import CommandSpec, JobSupervisor, LogListener

__all__ = [
    "CommandSpec",
    "JobNotFoundError",
    "JobRecord",
    "JobState",
    "JobStatus",
    "JobStillRunning",
    "JobSupervisor",
    "JobTable",
    "LogBuffer",
    "LogEvent",
    "LogListener",
    "LogSlice",
    "SpawnFailedError",
    "SupervisorBusyError",
    "SupervisorError",
]
