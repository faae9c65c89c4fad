"""Tests for PostgresClient - pooling, transactions and error translation."""

from enum import Enum
from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import pytest

from clients.postgres_client import PostgresClient, _convert_params, translate_errors
from core.exceptions import ConflictError, TransientStoreError, ValidationError


class TestTranslateErrors:
    """Driver exceptions become domain exceptions."""

    @pytest.mark.parametrize("driver_error,domain_error", [
        (psycopg2.errors.UniqueViolation, ConflictError),
        (psycopg2.errors.ForeignKeyViolation, ValidationError),
        (psycopg2.errors.CheckViolation, ValidationError),
        (psycopg2.errors.NotNullViolation, ValidationError),
        (psycopg2.errors.InvalidTextRepresentation, ValidationError),
        (psycopg2.errors.SerializationFailure, ConflictError),
        (psycopg2.errors.DeadlockDetected, ConflictError),
        (psycopg2.errors.LockNotAvailable, ConflictError),
        (psycopg2.errors.QueryCanceled, TransientStoreError),
        (psycopg2.OperationalError, TransientStoreError),
        (psycopg2.InterfaceError, TransientStoreError),
    ])
    def test_maps_driver_errors(self, driver_error, domain_error):
        """Each driver failure maps to one domain error, chained to the original."""
        with pytest.raises(domain_error) as exc:
            with translate_errors():
                raise driver_error("boom")

        assert isinstance(exc.value.__cause__, driver_error)

    def test_other_errors_pass_through(self):
        """Non-driver exceptions are untouched."""
        with pytest.raises(KeyError):
            with translate_errors():
                raise KeyError("x")


class TestConvertParams:
    """Parameter conversion before hitting the driver."""

    def test_uuid_and_enum(self):
        """UUIDs become strings, enums their values, recursively."""
        class Color(Enum):
            RED = "red"

        uid = UUID("00000000-0000-0000-0000-000000000001")

        assert _convert_params((uid, Color.RED, [uid], {"c": Color.RED})) == (
            str(uid), "red", [str(uid)], {"c": "red"}
        )

    def test_none(self):
        assert _convert_params(None) is None


@pytest.fixture
def mock_pool():
    """PostgresClient over a mocked ThreadedConnectionPool."""
    conn = MagicMock()
    conn.closed = 0
    conn.status = psycopg2.extensions.STATUS_READY

    with patch("psycopg2.pool.ThreadedConnectionPool") as pool_cls, \
            patch("psycopg2.extras.register_default_jsonb"):
        pool_cls.return_value.getconn.return_value = conn
        client = PostgresClient(f"postgresql://test/{uuid4().hex}", isolation_level="SERIALIZABLE")
        yield client, pool_cls, conn
        client.close()


class TestTransaction:
    """Commit on success, rollback on any exception."""

    def test_pool_configured_with_statement_timeout(self, mock_pool):
        """Every pooled connection carries the statement timeout."""
        _, pool_cls, _ = mock_pool

        assert pool_cls.call_args.kwargs["options"] == "-c statement_timeout=15000"

    def test_commits_on_success(self, mock_pool):
        """Clean exit commits and returns the connection."""
        client, pool_cls, conn = mock_pool

        with client.transaction():
            pass

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool_cls.return_value.putconn.assert_called_once_with(conn, close=False)

    def test_sets_isolation_level(self, mock_pool):
        """The configured isolation level is set on the transaction."""
        client, _, conn = mock_pool

        with client.transaction():
            pass

        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.execute.assert_called_with("SET TRANSACTION ISOLATION LEVEL SERIALIZABLE")

    def test_rolls_back_and_reraises(self, mock_pool):
        """An exception in the block rolls back and propagates unchanged."""
        client, _, conn = mock_pool

        with pytest.raises(RuntimeError, match="boom"):
            with client.transaction():
                raise RuntimeError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_commit_failure_is_translated(self, mock_pool):
        """A serialization failure at commit surfaces as ConflictError."""
        client, _, conn = mock_pool
        conn.commit.side_effect = psycopg2.errors.SerializationFailure("could not serialize")

        with pytest.raises(ConflictError):
            with client.transaction():
                pass

        conn.rollback.assert_called_once()

    def test_unknown_isolation_level_rejected(self):
        """Only the three supported levels are accepted."""
        with pytest.raises(ValueError, match="isolation level"):
            PostgresClient("postgresql://test/x", isolation_level="READ UNCOMMITTED")


class TestExecuteMethods:
    """Query execution against a real database (needs DATABASE_URL)."""

    @pytest.fixture
    def db(self, db_url):
        return PostgresClient(db_url)

    def test_execute_returns_list_of_dicts(self, db):
        """execute() returns list of row dicts."""
        assert db.execute("SELECT 1 as num, 'hello' as word") == [{"num": 1, "word": "hello"}]

    def test_execute_empty_returns_empty_list(self, db):
        """No matching rows returns [], not None."""
        assert db.execute("SELECT 1 WHERE false") == []

    def test_execute_single_no_rows_returns_none(self, db):
        """execute_single() returns None for empty result."""
        assert db.execute_single("SELECT 1 WHERE false") is None

    def test_execute_scalar_returns_value(self, db):
        """execute_scalar() returns first value of first row."""
        assert db.execute_scalar("SELECT 'test'") == "test"

    def test_statement_timeout_applied(self, db):
        """Pooled connections carry the configured statement timeout."""
        assert db.execute_scalar("SHOW statement_timeout") == "15s"
