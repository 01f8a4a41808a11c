from __future__ import annotations

import pytest

from stellar_server.runner import (
    JobNotFoundError,
    JobRecord,
    JobState,
    JobStatus,
    JobTable,
    LogBuffer,
)


def _record(job_id: str) -> JobRecord:
    return JobRecord(
        job_id=job_id,
        argv=("true",),
        logs=LogBuffer(),
        status=JobStatus.running(),
    )


def test_finish_sets_finished_at_only_for_terminal_states() -> None:
    running = JobStatus.running()
    assert running.finished_at is None
    assert not running.is_terminal

    done = running.finish(JobState.ERROR, exit_code=2, error="Build failed with exit code 2.")
    assert done.is_terminal
    assert done.finished_at is not None
    assert done.started_at == running.started_at
    assert done.exit_code == 2

    with pytest.raises(ValueError):
        running.finish(JobState.RUNNING)


def test_table_rejects_duplicates_and_unknown_ids() -> None:
    table = JobTable()
    table.insert(_record("a"))
    with pytest.raises(ValueError):
        table.insert(_record("a"))
    assert "a" in table
    assert table.ids() == ["a"]

    with pytest.raises(JobNotFoundError):
        with table.checkout("missing"):
            pass
    with pytest.raises(JobNotFoundError):
        table.remove("missing")

    table.remove("a")
    assert len(table) == 0
