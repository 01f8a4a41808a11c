# ruff: noqa: B008
"""FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stellar_server.api.context import AppContext, get_app_context
from stellar_server.api.middleware import AuditLoggerMiddleware
from stellar_server.api.routers import builds
from stellar_server.api.routers import logs as log_router
from stellar_server.api.schemas import APIMessage
from stellar_server.api.streams import LogBroker
from stellar_server.runner import JobSupervisor
from stellar_server.settings import load_server_settings
from stellar_server.version import __version__

logger = logging.getLogger(__name__)


def create_app(context: AppContext | None = None) -> FastAPI:
    """Instantiate the FastAPI application with all routers."""

    if context is None:
        settings = load_server_settings()
        context = AppContext(
            supervisor=JobSupervisor.from_settings(settings),
            settings=settings,
        )
    context.log_broker = context.log_broker or LogBroker()
    context.log_broker.attach(context.supervisor)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        cancelled = context.supervisor.shutdown()
        if cancelled:
            logger.info("api.shutdown", extra={"cancelled_builds": cancelled})
        if context.log_broker is not None:
            context.log_broker.close()

    app = FastAPI(
        title="Stellar Build API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.context = context
    app.add_middleware(AuditLoggerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(context.settings.cors_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(builds.router)
    app.include_router(log_router.router)

    @app.get("/healthz", response_model=APIMessage, tags=["system"])
    def healthz() -> APIMessage:
        return APIMessage(message="ok")

    @app.get("/readyz", response_model=APIMessage, tags=["system"])
    def readyz(_: AppContext = Depends(get_app_context)) -> APIMessage:
        return APIMessage(message="ready")

    return app


app = create_app()

__all__ = ["app", "create_app"]
