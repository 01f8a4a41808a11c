"""Click-based CLI for driving builds on the Stellar build service."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass

import click

from stellar_client.config import ClientConfig, load_client_config
from stellar_client.sdk import BuildStartRequest, ServerError, StellarClient


@dataclass
class CLIState:
    settings: ClientConfig
    client: StellarClient | None = None

    def ensure_client(self) -> StellarClient:
        if self.client is None:
            self.client = StellarClient(
                base_url=self.settings.base_url,
                timeout=self.settings.timeout,
            )
        return self.client

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None


def _parse_env(entries: Iterable[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in entries:
        if "=" not in entry:
            raise click.BadParameter(f"Environment entries must be KEY=VALUE (received '{entry}').")
        key, value = entry.split("=", 1)
        env[key.strip()] = value
    return env


@click.group()
@click.option("--base-url", help="Override the service URL for this invocation.")
@click.option("--timeout", type=float, help="HTTP timeout in seconds.")
@click.pass_context
def app(ctx: click.Context, base_url: str | None, timeout: float | None) -> None:
    """Start, follow and cancel builds through the Stellar build service."""

    config = load_client_config()
    state = CLIState(settings=config.merged(base_url=base_url, timeout=timeout))
    ctx.obj = state
    ctx.call_on_close(state.close)


@app.group()
def build() -> None:
    """Build job commands."""


@build.command("start", context_settings={"ignore_unknown_options": True})
@click.argument("executable")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--cwd", help="Working directory for the build process.")
@click.option("--env", "env_entries", multiple=True, help="KEY=VALUE environment override.")
@click.option(
    "--follow/--no-follow",
    default=False,
    show_default=True,
    help="Stream logs until the build finishes.",
)
@click.pass_obj
def build_start(
    state: CLIState,
    executable: str,
    args: tuple[str, ...],
    cwd: str | None,
    env_entries: Iterable[str],
    follow: bool,
) -> None:
    client = state.ensure_client()
    request = BuildStartRequest(
        executable=executable,
        args=list(args),
        cwd=cwd,
        env=_parse_env(env_entries),
    )
    try:
        build_id = client.start_build(request)
    except ServerError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Build {build_id} started.")
    if follow:
        _follow(client, build_id, cursor=0)


@build.command("status")
@click.argument("build_id")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    show_default=True,
    help="Status output format.",
)
@click.pass_obj
def build_status(state: CLIState, build_id: str, output_format: str) -> None:
    client = state.ensure_client()
    status = _call(client.get_status, build_id)
    if output_format.lower() == "json":
        click.echo(
            json.dumps(
                {
                    "status": status.status,
                    "exit_code": status.exit_code,
                    "error": status.error,
                    "started_at": status.started_at.isoformat() if status.started_at else None,
                    "finished_at": status.finished_at.isoformat() if status.finished_at else None,
                }
            )
        )
    else:
        click.echo(status.to_text())


@build.command("logs")
@click.argument("build_id")
@click.option("--cursor", default=0, show_default=True, type=click.IntRange(min=0))
@click.option("--follow/--no-follow", default=False, show_default=True, help="Stream live logs.")
@click.pass_obj
def build_logs(state: CLIState, build_id: str, cursor: int, follow: bool) -> None:
    client = state.ensure_client()
    if follow:
        _follow(client, build_id, cursor=cursor)
        return
    page = _call(client.get_logs, build_id, cursor)
    for line in page.lines:
        click.echo(line)


@build.command("cancel")
@click.argument("build_id")
@click.pass_obj
def build_cancel(state: CLIState, build_id: str) -> None:
    client = state.ensure_client()
    if _call(client.cancel_build, build_id):
        click.echo(f"Build {build_id} cancelled.")
    else:
        click.echo(f"Build {build_id} is not running.")


@build.command("forget")
@click.argument("build_id")
@click.pass_obj
def build_forget(state: CLIState, build_id: str) -> None:
    client = state.ensure_client()
    _call(client.forget_build, build_id)
    click.echo(f"Build {build_id} forgotten.")


@build.command("list")
@click.pass_obj
def build_list(state: CLIState) -> None:
    client = state.ensure_client()
    for build_id in _call(client.list_builds):
        click.echo(build_id)


def _call(func, *args):
    try:
        return func(*args)
    except ServerError as exc:
        raise click.ClickException(exc.message) from exc


def _follow(client: StellarClient, build_id: str, *, cursor: int) -> None:
    try:
        for line in client.follow_logs(build_id, cursor=cursor):
            click.echo(line)
        status = client.get_status(build_id)
    except ServerError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(f"Build {build_id} finished: {status.to_text()}")
    if status.status != "success":
        raise click.exceptions.Exit(1)


def main() -> None:
    """Entry point for console_scripts."""

    app(standalone_mode=True)
