"""Command line entry point for the build supervisor service."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
import uvicorn

from stellar_server.api.context import AppContext
from stellar_server.api.main import create_app
from stellar_server.runner import JobSupervisor
from stellar_server.settings import ServerSettings, load_server_settings

app = typer.Typer(help="Run and inspect the Stellar build supervisor service.")

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        envvar="STELLAR_CONFIG",
        help="TOML settings file",
        show_default=False,
    ),
]
HostOption = Annotated[
    str | None,
    typer.Option("--host", help="Interface to bind", show_default=False),
]
PortOption = Annotated[
    int | None,
    typer.Option("--port", help="Port to bind", show_default=False),
]


def _resolve_settings(
    config: Path | None, host: str | None, port: int | None
) -> ServerSettings:
    if config is not None and not config.exists():
        raise typer.BadParameter(f"Settings file {config} does not exist")
    settings = load_server_settings(config)
    if host:
        settings = replace(settings, host=host)
    if port:
        settings = replace(settings, port=port)
    return settings


@app.command()
def serve(
    config: ConfigOption = None,
    host: HostOption = None,
    port: PortOption = None,
) -> None:
    """Serve the build API until interrupted."""

    settings = _resolve_settings(config, host, port)
    context = AppContext(supervisor=JobSupervisor.from_settings(settings), settings=settings)
    application = create_app(context)
    typer.echo(f"Stellar backend listening on http://{settings.host}:{settings.port}")
    uvicorn.run(
        application,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


@app.command("show-config")
def show_config(
    config: ConfigOption = None,
    host: HostOption = None,
    port: PortOption = None,
) -> None:
    """Print the settings the server would start with."""

    settings = _resolve_settings(config, host, port)
    typer.echo(f"host = {settings.host}")
    typer.echo(f"port = {settings.port}")
    typer.echo(f"cors_origins = {', '.join(settings.cors_origins)}")
    typer.echo(f"log_level = {settings.log_level}")
    typer.echo(f"drain_timeout = {settings.drain_timeout}")
    limit = settings.max_concurrent_jobs
    typer.echo(f"max_concurrent_jobs = {limit if limit is not None else 'unlimited'}")


def main() -> None:
    """Entry point for console_scripts."""

    app()


if __name__ == "__main__":  # pragma: no cover - module executed as a script
    main()
