"""API test fixtures with TestClient over the full app and an in-memory datastore."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from utils.config import AppConfig


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(datastore):
    """The real app (middleware, error handlers, routers) over the fake datastore."""
    return create_app(datastore=datastore, config=AppConfig())


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def client(app, test_user_id):
    """Client acting as the primary test user via the gateway header."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-User-Id"] = str(test_user_id)
    return c


@pytest.fixture
def anonymous_client(app):
    """Client without X-User-Id (acts as the system user)."""
    return TestClient(app, raise_server_exceptions=False)
