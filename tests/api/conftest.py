from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from stellar_server.api.context import AppContext
from stellar_server.api.main import create_app
from stellar_server.runner import JobSupervisor
from stellar_server.settings import ServerSettings


@pytest.fixture()
def settings() -> ServerSettings:
    return ServerSettings()


@pytest.fixture()
def app(settings):
    context = AppContext(supervisor=JobSupervisor.from_settings(settings), settings=settings)
    return create_app(context)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
