"""Configuration helpers shared across CLI and SDK surfaces."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "config.toml"
_DEFAULT_BASE_URL = "http://127.0.0.1:42800"
_DEFAULT_TIMEOUT = 30.0
_ENV_HOME = "STELLAR_HOME"
_ENV_URL = "STELLAR_URL"


@dataclass(slots=True)
class ClientConfig:
    """Settings used to reach the build service."""

    base_url: str = _DEFAULT_BASE_URL
    timeout: float = _DEFAULT_TIMEOUT

    def merged(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> ClientConfig:
        """Return a copy that applies CLI/env overrides."""

        return replace(
            self,
            base_url=base_url or self.base_url,
            timeout=self.timeout if timeout is None else timeout,
        )


def config_path() -> Path:
    """Return the path to the client configuration file."""

    custom = os.environ.get(_ENV_HOME)
    base = Path(custom) if custom else Path.home() / ".stellar"
    return base / _CONFIG_FILENAME


def load_client_config() -> ClientConfig:
    """Load configuration from disk + environment overrides."""

    data: dict[str, Any] = {}
    path = config_path()
    if path.exists():
        data = tomllib.loads(path.read_text())

    config = ClientConfig(
        base_url=str(data.get("base_url", _DEFAULT_BASE_URL)),
        timeout=float(data.get("timeout", _DEFAULT_TIMEOUT)),
    )
    return config.merged(base_url=os.environ.get(_ENV_URL))
