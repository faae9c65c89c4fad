"""Shared test fixtures for CRM test suite."""

from datetime import timedelta
from uuid import UUID

import pytest

from fakes import FakeDatastore
from core.audit import AuditLogger
from core.models import Customer, CustomerSource
from utils.timezone import now_utc
from utils.user_context import user_context


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary test user - use for attribution tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test user's ID."""
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Run the test as the primary test user."""
    with user_context(test_user_id, user_ip="10.0.0.1", request_id="req-test"):
        yield test_user_id


# =============================================================================
# DATASTORE FIXTURES
# =============================================================================


@pytest.fixture
def datastore() -> FakeDatastore:
    """Empty in-memory datastore."""
    return FakeDatastore()


@pytest.fixture
def audit(datastore) -> AuditLogger:
    return AuditLogger(datastore.audit)


@pytest.fixture
def make_customer(datastore):
    """Insert a customer row directly, bypassing the service."""

    def _make(phone: str, name: str, age: timedelta = timedelta(0), **fields) -> Customer:
        created = now_utc() - age
        customer = Customer(
            phone=phone,
            name=name,
            source=fields.pop("source", CustomerSource.OTHER),
            created_at=created,
            updated_at=created,
            **fields,
        )
        return datastore.customers.insert(customer)

    return _make


# =============================================================================
# POSTGRES (integration, opt-in)
# =============================================================================


@pytest.fixture(scope="session")
def db_url():
    """DATABASE_URL for integration tests; skips when unset."""
    import os

    url = os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url
