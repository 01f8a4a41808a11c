"""Application context helpers shared across routers."""

from dataclasses import dataclass, field
from typing import cast

from fastapi import Request, WebSocket

from stellar_server.api.streams import LogBroker
from stellar_server.runner import JobSupervisor
from stellar_server.settings import ServerSettings


@dataclass(slots=True)
class AppContext:
    """Container for shared application dependencies."""

    supervisor: JobSupervisor
    settings: ServerSettings = field(default_factory=ServerSettings)
    log_broker: LogBroker | None = None


def get_app_context(request: Request) -> AppContext:
    """Return the configured :class:`AppContext`."""

    context = getattr(request.app.state, "context", None)
    if context is None:  # pragma: no cover
        raise RuntimeError("Application context missing")
    return cast(AppContext, context)


def get_websocket_context(websocket: WebSocket) -> AppContext:
    """Return the configured :class:`AppContext` from a WebSocket."""

    context = getattr(websocket.app.state, "context", None)
    if context is None:  # pragma: no cover
        raise RuntimeError("Application context missing")
    return cast(AppContext, context)


__all__ = ["AppContext", "get_app_context", "get_websocket_context"]
