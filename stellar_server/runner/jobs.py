"""Job records and the table that owns them."""

from __future__ import annotations

import enum
import subprocess
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from stellar_server.runner.errors import JobNotFoundError
from stellar_server.runner.log_buffer import LogBuffer

__all__ = [
    "JobRecord",
    "JobState",
    "JobStatus",
    "JobTable",
    "LogEvent",
    "LogSlice",
]


class JobState(str, enum.Enum):
    """Lifecycle states for a supervised build."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({JobState.SUCCESS, JobState.ERROR, JobState.CANCELLED})


@dataclass(frozen=True, slots=True)
class JobStatus:
    """Immutable status snapshot handed out to callers."""

    state: JobState
    started_at: datetime | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None
    error: str | None = None

    @classmethod
    def running(cls, started_at: datetime | None = None) -> JobStatus:
        return cls(state=JobState.RUNNING, started_at=started_at or datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def finish(
        self,
        state: JobState,
        *,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> JobStatus:
        """Return the terminal snapshot that follows this one."""

        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        return replace(
            self,
            state=state,
            exit_code=exit_code,
            error=error,
            finished_at=datetime.now(UTC),
        )


@dataclass(frozen=True, slots=True)
class LogEvent:
    """A single log line published to live listeners."""

    job_id: str
    index: int
    line: str
    stream: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class LogSlice:
    """Result of an incremental log read."""

    lines: list[str]
    next_cursor: int
    finished: bool


@dataclass(slots=True)
class JobRecord:
    """Mutable state of one job; only touched under the table lock."""

    job_id: str
    argv: tuple[str, ...]
    logs: LogBuffer
    status: JobStatus
    process: subprocess.Popen[str] | None = None
    pumps: list[threading.Thread] = field(default_factory=list)


class JobTable:
    """Concurrent mapping of job identifiers to records."""

    def __init__(self) -> None:
        self._records: dict[str, JobRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._records

    def insert(self, record: JobRecord) -> None:
        with self._lock:
            if record.job_id in self._records:
                raise ValueError(f"Duplicate job id {record.job_id}")
            self._records[record.job_id] = record

    @contextmanager
    def checkout(self, job_id: str) -> Iterator[JobRecord]:
        """Hold the table lock while the caller inspects or mutates a record."""

        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            yield record

    @contextmanager
    def locked(self, record: JobRecord) -> Iterator[JobRecord]:
        """Hold the table lock for a record obtained earlier."""

        with self._lock:
            yield record

    def remove(self, job_id: str) -> JobRecord:
        with self._lock:
            record = self._records.pop(job_id, None)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._records)
