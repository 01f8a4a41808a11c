"""Server settings parsed from TOML and the environment."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

__all__ = ["ServerSettings", "load_server_settings"]

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 42800
_ENV_HOST = "STELLAR_RPC_HOST"
_ENV_PORT = "STELLAR_RPC_PORT"
_ENV_CONFIG = "STELLAR_CONFIG"


@dataclass(slots=True)
class ServerSettings:
    """User-configurable server and supervisor settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "info"
    drain_timeout: float = 2.0
    max_concurrent_jobs: int | None = None

    @classmethod
    def from_toml(cls, path: Path) -> ServerSettings:
        data = tomllib.loads(Path(path).read_text("utf-8"))
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ServerSettings:
        server = data.get("server", {})
        supervisor = data.get("supervisor", {})
        max_jobs = supervisor.get("max_concurrent_jobs")
        return cls(
            host=str(server.get("host", DEFAULT_HOST)),
            port=int(server.get("port", DEFAULT_PORT)),
            cors_origins=[str(origin) for origin in server.get("cors_origins", ["*"])],
            log_level=str(server.get("log_level", "info")),
            drain_timeout=float(supervisor.get("drain_timeout", 2.0)),
            max_concurrent_jobs=int(max_jobs) if max_jobs else None,
        )

    def with_env(self, environ: Mapping[str, str] | None = None) -> ServerSettings:
        """Return a copy with ``STELLAR_RPC_HOST``/``STELLAR_RPC_PORT`` applied."""

        environ = os.environ if environ is None else environ
        host = environ.get(_ENV_HOST) or self.host
        port = self.port
        raw_port = environ.get(_ENV_PORT)
        if raw_port:
            try:
                port = int(raw_port)
            except ValueError:
                port = self.port
        return replace(self, host=host, port=port)


def load_server_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ServerSettings:
    """Load settings from ``path`` (or ``$STELLAR_CONFIG``) plus env overrides."""

    environ = os.environ if environ is None else environ
    config_file = path or (Path(environ[_ENV_CONFIG]) if environ.get(_ENV_CONFIG) else None)
    settings = ServerSettings()
    if config_file is not None:
        settings = ServerSettings.from_toml(Path(config_file))
    return settings.with_env(environ)
