"""Job supervisor responsible for running build processes in the background."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING

from stellar_server.runner.errors import (
    JobNotFoundError,
    JobStillRunning,
    SpawnFailedError,
    SupervisorBusyError,
)
from stellar_server.runner.jobs import (
    JobRecord,
    JobState,
    JobStatus,
    JobTable,
    LogEvent,
    LogSlice,
)
from stellar_server.runner.log_buffer import LogBuffer

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from stellar_server.settings import ServerSettings

__all__ = [
    "CommandSpec",
    "JobSupervisor",
    "LogListener",
]

logger = logging.getLogger(__name__)

LogListener = Callable[[LogEvent], None]

# Suppresses the console window of the child on Windows; zero elsewhere.
_CREATION_FLAGS = getattr(subprocess, "CREATE_NO_WINDOW", 0)


@dataclass(slots=True)
class CommandSpec:
    """A fully resolved command line to supervise."""

    executable: str | os.PathLike[str]
    args: Sequence[str] = ()
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    @property
    def argv(self) -> list[str]:
        return [os.fspath(self.executable), *(str(arg) for arg in self.args)]


class JobSupervisor:
    """Spawns build processes, captures their output and tracks their status."""

    def __init__(
        self,
        *,
        base_env: Mapping[str, str] | None = None,
        drain_timeout: float = 2.0,
        max_concurrent_jobs: int | None = None,
    ) -> None:
        self.base_env = dict(os.environ if base_env is None else base_env)
        self.drain_timeout = drain_timeout
        self.max_concurrent_jobs = max_concurrent_jobs
        self.table = JobTable()
        self._listeners: list[LogListener] = []
        self._listener_lock = threading.Lock()
        self._start_lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: ServerSettings,
        *,
        base_env: Mapping[str, str] | None = None,
    ) -> JobSupervisor:
        return cls(
            base_env=base_env,
            drain_timeout=settings.drain_timeout,
            max_concurrent_jobs=settings.max_concurrent_jobs,
        )

    # ------------------------------------------------------------------ listeners
    def add_listener(self, callback: LogListener) -> Callable[[], None]:
        """Register a live subscriber; returns a callable that removes it."""

        with self._listener_lock:
            self._listeners.append(callback)

        def _remove() -> None:
            with self._listener_lock:
                try:
                    self._listeners.remove(callback)
                except ValueError:  # pragma: no cover - already removed
                    pass

        return _remove

    # ------------------------------------------------------------------ operations
    def start(
        self,
        executable: str | os.PathLike[str],
        args: Sequence[str] = (),
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Spawn ``executable`` and return the new job id without waiting."""

        argv = [os.fspath(executable), *(str(arg) for arg in args)]
        command_repr = shlex.join(argv)
        job_id = str(uuid.uuid4())
        with self._start_lock:
            self._ensure_capacity()
            process = self._spawn(argv, cwd, self._build_env(env))
            logs = LogBuffer()
            banner = f"Running: {command_repr}"
            banner_index = logs.append(banner)
            # Listeners see the banner before any captured line.
            self._publish(job_id, banner_index, banner, "system")
            pumps = self._start_pumps(job_id, logs, process)
            record = JobRecord(
                job_id=job_id,
                argv=tuple(argv),
                logs=logs,
                status=JobStatus.running(),
                process=process,
                pumps=pumps,
            )
            self.table.insert(record)
        logger.info(
            "job.started",
            extra={"job_id": job_id, "command": command_repr, "pid": process.pid},
        )
        return job_id

    def start_command(self, spec: CommandSpec) -> str:
        return self.start(spec.executable, spec.args, cwd=spec.cwd, env=spec.env)

    def poll_status(self, job_id: str) -> JobStatus:
        """Return the job status, reaping the process if it has exited."""

        with self.table.checkout(job_id) as record:
            process = record.process
            if record.status.state is not JobState.RUNNING or process is None:
                return record.status
            try:
                returncode = process.poll()
            except OSError as exc:
                return self._finish(
                    record, JobState.ERROR, error=f"Failed to check process: {exc}"
                )
            if returncode is None:
                return record.status
            pumps = list(record.pumps)

        self._drain(pumps)

        with self.table.locked(record):
            if record.status.state is not JobState.RUNNING:
                return record.status
            if returncode == 0:
                return self._finish(record, JobState.SUCCESS, exit_code=0)
            if returncode < 0:
                return self._finish(
                    record,
                    JobState.ERROR,
                    error=f"Build process terminated by signal {-returncode}.",
                )
            return self._finish(
                record,
                JobState.ERROR,
                exit_code=returncode,
                error=f"Build failed with exit code {returncode}.",
            )

    def fetch_logs_since(self, job_id: str, cursor: int) -> LogSlice:
        """Return the lines appended since ``cursor``; never reaps the process."""

        with self.table.checkout(job_id) as record:
            finished = record.status.state is not JobState.RUNNING
            logs = record.logs
        lines, next_cursor = logs.read_from(cursor)
        return LogSlice(lines=lines, next_cursor=next_cursor, finished=finished)

    def cancel(self, job_id: str) -> bool:
        """Kill a running job. Returns ``False`` when the job already finished."""

        message = "Cancel requested."
        with self.table.checkout(job_id) as record:
            if record.status.state is not JobState.RUNNING:
                return False
            process = record.process
            if process is not None:
                try:
                    process.kill()
                except OSError as exc:
                    logger.warning(
                        "job.kill_failed", extra={"job_id": job_id, "error": str(exc)}
                    )
                else:
                    self._reap(job_id, process)
            index = record.logs.append(message)
            self._finish(record, JobState.CANCELLED)
        self._publish(job_id, index, message, "system")
        return True

    def forget(self, job_id: str) -> None:
        """Drop a finished job from the table."""

        with self.table.checkout(job_id) as record:
            if record.status.state is JobState.RUNNING:
                raise JobStillRunning(f"Build {job_id} is still running")
            self.table.remove(job_id)
        logger.info("job.forgotten", extra={"job_id": job_id})

    def job_ids(self) -> list[str]:
        return self.table.ids()

    def shutdown(self) -> list[str]:
        """Cancel every running job and return the ids that were cancelled."""

        cancelled: list[str] = []
        for job_id in self.table.ids():
            try:
                if self.cancel(job_id):
                    cancelled.append(job_id)
            except JobNotFoundError:
                continue
        return cancelled

    # ------------------------------------------------------------------ helpers
    def _spawn(
        self,
        argv: Sequence[str],
        cwd: Path | str | None,
        env: Mapping[str, str],
    ) -> subprocess.Popen[bytes]:
        try:
            return subprocess.Popen(  # noqa: S603
                list(argv),
                cwd=None if cwd is None else str(cwd),
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                creationflags=_CREATION_FLAGS,
            )
        except OSError as exc:
            logger.warning(
                "job.spawn_failed",
                extra={"command": shlex.join(argv), "error": str(exc)},
            )
            raise SpawnFailedError(f"Failed to start build: {exc}") from exc

    def _start_pumps(
        self,
        job_id: str,
        logs: LogBuffer,
        process: subprocess.Popen[bytes],
    ) -> list[threading.Thread]:
        threads: list[threading.Thread] = []
        for label, pipe in (("stdout", process.stdout), ("stderr", process.stderr)):
            if pipe is None:
                continue
            thread = threading.Thread(
                target=self._pump,
                args=(job_id, logs, pipe, label),
                name=f"pump-{label}-{job_id[:8]}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
        return threads

    def _pump(self, job_id: str, logs: LogBuffer, pipe: IO[bytes], label: str) -> None:
        # Binary reads split on "\n" only; a bare "\r" stays inside the line.
        try:
            with pipe:
                for raw in iter(pipe.readline, b""):
                    line = _decode_line(raw)
                    index = logs.append(line)
                    self._publish(job_id, index, line, label)
        except (OSError, ValueError) as exc:
            logger.debug(
                "job.pump_closed",
                extra={"job_id": job_id, "stream": label, "error": str(exc)},
            )

    def _publish(self, job_id: str, index: int, line: str, stream: str) -> None:
        with self._listener_lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        event = LogEvent(
            job_id=job_id,
            index=index,
            line=line,
            stream=stream,
            timestamp=datetime.now(UTC),
        )
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("job.listener_failed", extra={"job_id": job_id})

    def _drain(self, pumps: Sequence[threading.Thread]) -> None:
        if self.drain_timeout <= 0:
            return
        deadline = time.monotonic() + self.drain_timeout
        current = threading.current_thread()
        for thread in pumps:
            if thread is current:
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            thread.join(timeout=remaining)

    def _finish(
        self,
        record: JobRecord,
        state: JobState,
        *,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> JobStatus:
        record.status = record.status.finish(state, exit_code=exit_code, error=error)
        record.process = None
        logger.info(
            "job.finished",
            extra={
                "job_id": record.job_id,
                "state": state.value,
                "exit_code": exit_code,
            },
        )
        return record.status

    def _reap(self, job_id: str, process: subprocess.Popen[bytes]) -> None:
        threading.Thread(
            target=process.wait,
            name=f"reap-{job_id[:8]}",
            daemon=True,
        ).start()

    def _ensure_capacity(self) -> None:
        # Counts live processes without reaping so ``start`` never waits on a drain.
        if self.max_concurrent_jobs is None:
            return
        running = 0
        for job_id in self.table.ids():
            try:
                with self.table.checkout(job_id) as record:
                    if _is_active(record):
                        running += 1
            except JobNotFoundError:
                continue
        if running >= self.max_concurrent_jobs:
            raise SupervisorBusyError("Another build is already running.")

    def _build_env(self, overrides: Mapping[str, str] | None) -> dict[str, str]:
        env: dict[str, str] = dict(self.base_env)
        if overrides:
            env.update({k: str(v) for k, v in overrides.items()})
        env.setdefault("PYTHONUNBUFFERED", "1")
        return env


def _decode_line(raw: bytes) -> str:
    """Decode one captured line, dropping its ``\\n`` and a single ``\\r`` before it."""

    return raw.decode("utf-8", errors="replace").removesuffix("\n").removesuffix("\r")


def _is_active(record: JobRecord) -> bool:
    if record.status.state is not JobState.RUNNING or record.process is None:
        return False
    try:
        return record.process.poll() is None
    except OSError:
        return True
