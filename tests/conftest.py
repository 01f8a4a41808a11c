"""Shared pytest fixtures."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator

import pytest

from stellar_server.runner import JobStatus, JobSupervisor

WaitForTerminal = Callable[..., JobStatus]


@pytest.fixture()
def supervisor() -> Iterator[JobSupervisor]:
    supervisor = JobSupervisor()
    yield supervisor
    supervisor.shutdown()


@pytest.fixture()
def wait_for_terminal() -> WaitForTerminal:
    def _wait(supervisor: JobSupervisor, job_id: str, timeout: float = 15.0) -> JobStatus:
        deadline = time.monotonic() + timeout
        while True:
            status = supervisor.poll_status(job_id)
            if status.is_terminal:
                return status
            if time.monotonic() > deadline:
                raise AssertionError(f"job {job_id} still {status.state.value} after {timeout}s")
            time.sleep(0.02)

    return _wait
