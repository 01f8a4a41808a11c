from __future__ import annotations

import importlib
import json

from click.testing import CliRunner

from stellar_client.sdk.client import ServerError
from stellar_client.sdk.models import BuildLogs, BuildStartRequest, BuildStatus

cli_main = importlib.import_module("stellar_client.cli.main")


class DummyClient:
    def __init__(self, final_status: str = "success") -> None:
        self.start_request: BuildStartRequest | None = None
        self.final_status = final_status
        self.cancel_result = True

    def close(self) -> None:  # pragma: no cover - click handles lifecycle
        pass

    def start_build(self, request: BuildStartRequest) -> str:
        self.start_request = request
        return "build-1"

    def list_builds(self) -> list[str]:
        return ["build-1", "build-2"]

    def get_status(self, build_id: str) -> BuildStatus:
        if self.final_status == "error":
            return BuildStatus(
                status="error", exit_code=2, error="Build failed with exit code 2."
            )
        return BuildStatus(status=self.final_status, exit_code=0)

    def get_logs(self, build_id: str, cursor: int = 0) -> BuildLogs:
        return BuildLogs(lines=["alpha", "beta"][cursor:], next_cursor=2, finished=True)

    def follow_logs(self, build_id: str, *, cursor: int = 0, poll_interval: float = 0.5):
        yield from self.get_logs(build_id, cursor).lines

    def cancel_build(self, build_id: str) -> bool:
        return self.cancel_result

    def forget_build(self, build_id: str) -> None:
        if build_id == "missing":
            raise ServerError(404, "Build not found.")


def _runner(monkeypatch, dummy: DummyClient) -> CliRunner:
    monkeypatch.setattr(cli_main, "StellarClient", lambda **_: dummy)
    return CliRunner()


def _env(tmp_path) -> dict[str, str | None]:
    return {"STELLAR_HOME": str(tmp_path), "STELLAR_URL": None}


def test_build_start_passes_arguments(monkeypatch, tmp_path):
    dummy = DummyClient()
    runner = _runner(monkeypatch, dummy)

    result = runner.invoke(
        cli_main.app,
        [
            "build",
            "start",
            "--cwd",
            str(tmp_path),
            "--env",
            "MODE=release",
            "cargo",
            "build",
            "--release",
        ],
        env=_env(tmp_path),
    )

    assert result.exit_code == 0, result.output
    assert "Build build-1 started." in result.output
    assert dummy.start_request is not None
    assert dummy.start_request.executable == "cargo"
    assert dummy.start_request.args == ["build", "--release"]
    assert dummy.start_request.cwd == str(tmp_path)
    assert dummy.start_request.env == {"MODE": "release"}


def test_build_start_follow_exits_nonzero_on_failure(monkeypatch, tmp_path):
    dummy = DummyClient(final_status="error")
    runner = _runner(monkeypatch, dummy)

    result = runner.invoke(
        cli_main.app, ["build", "start", "--follow", "make"], env=_env(tmp_path)
    )

    assert result.exit_code == 1
    assert "alpha\nbeta\n" in result.output
    assert "Build build-1 finished: error | exit code 2" in result.output


def test_build_logs_respects_cursor(monkeypatch, tmp_path):
    runner = _runner(monkeypatch, DummyClient())

    result = runner.invoke(
        cli_main.app, ["build", "logs", "build-1", "--cursor", "1"], env=_env(tmp_path)
    )

    assert result.exit_code == 0, result.output
    assert result.output == "beta\n"


def test_build_status_json(monkeypatch, tmp_path):
    runner = _runner(monkeypatch, DummyClient())

    result = runner.invoke(
        cli_main.app, ["build", "status", "build-1", "--format", "json"], env=_env(tmp_path)
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "success"
    assert payload["exit_code"] == 0
    assert payload["started_at"] is None


def test_build_cancel_reports_not_running(monkeypatch, tmp_path):
    dummy = DummyClient()
    dummy.cancel_result = False
    runner = _runner(monkeypatch, dummy)

    result = runner.invoke(cli_main.app, ["build", "cancel", "build-1"], env=_env(tmp_path))

    assert result.exit_code == 0, result.output
    assert "Build build-1 is not running." in result.output


def test_build_list(monkeypatch, tmp_path):
    runner = _runner(monkeypatch, DummyClient())

    result = runner.invoke(cli_main.app, ["build", "list"], env=_env(tmp_path))

    assert result.output.splitlines() == ["build-1", "build-2"]


def test_invalid_env_entry_is_usage_error(monkeypatch, tmp_path):
    runner = _runner(monkeypatch, DummyClient())

    result = runner.invoke(
        cli_main.app, ["build", "start", "--env", "NOPE", "make"], env=_env(tmp_path)
    )

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_server_errors_become_click_errors(monkeypatch, tmp_path):
    runner = _runner(monkeypatch, DummyClient())

    result = runner.invoke(cli_main.app, ["build", "forget", "missing"], env=_env(tmp_path))

    assert result.exit_code == 1
    assert "Build not found." in result.output


def test_config_file_and_flags_select_base_url(monkeypatch, tmp_path):
    captured: list[dict[str, object]] = []

    def _client(**kwargs):
        captured.append(kwargs)
        return DummyClient()

    monkeypatch.setattr(cli_main, "StellarClient", _client)
    (tmp_path / "config.toml").write_text('base_url = "http://builds.local:9000"\ntimeout = 5\n')
    runner = CliRunner()

    from_file = runner.invoke(cli_main.app, ["build", "list"], env=_env(tmp_path))
    from_flag = runner.invoke(
        cli_main.app,
        ["--base-url", "http://override:1", "--timeout", "2", "build", "list"],
        env=_env(tmp_path),
    )

    assert from_file.exit_code == 0, from_file.output
    assert from_flag.exit_code == 0, from_flag.output
    assert captured[0] == {"base_url": "http://builds.local:9000", "timeout": 5.0}
    assert captured[1] == {"base_url": "http://override:1", "timeout": 2.0}
