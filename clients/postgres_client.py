"""
PostgreSQL client with connection pooling and explicit transactions.

Uses psycopg2 with ThreadedConnectionPool. Single statements go through
execute()/execute_returning() and commit immediately. Multi-statement units of
work go through transaction(), which pins one pooled connection and commits on
normal exit or rolls back on any exception (including KeyboardInterrupt and
task cancellation).

Driver errors never escape this module: they are translated into the domain
taxonomy in core.exceptions.
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import psycopg2.extras
import psycopg2.pool

from core.exceptions import ConflictError, TransientStoreError, ValidationError

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False

_ISOLATION_LEVELS = {"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}

Params = Tuple | Dict | None


def _convert_params(params: Params) -> Params:
    """Convert UUID and Enum values to their plain representations."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map psycopg2 exceptions onto core.exceptions."""
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        raise ConflictError(f"Duplicate key: {e.diag.message_detail or e}") from e
    except psycopg2.errors.ForeignKeyViolation as e:
        raise ValidationError(f"Referenced row missing: {e.diag.message_detail or e}") from e
    except (
        psycopg2.errors.CheckViolation,
        psycopg2.errors.NotNullViolation,
        psycopg2.DataError,
    ) as e:
        raise ValidationError(f"Invalid value: {e.diag.message_primary or e}") from e
    except (
        psycopg2.errors.SerializationFailure,
        psycopg2.errors.DeadlockDetected,
        psycopg2.errors.LockNotAvailable,
    ) as e:
        raise ConflictError(f"Concurrent modification: {e}") from e
    except psycopg2.errors.QueryCanceled as e:
        raise TransientStoreError(f"Statement timed out: {e}") from e
    except (psycopg2.OperationalError, psycopg2.InterfaceError, psycopg2.pool.PoolError) as e:
        raise TransientStoreError(f"Database unavailable: {e}") from e


class Transaction:
    """
    Statement executor bound to one connection inside an open transaction.

    Same query methods as PostgresClient, but nothing is committed until the
    enclosing PostgresClient.transaction() block exits cleanly.
    """

    def __init__(self, conn):
        self._conn = conn

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with translate_errors():
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, _convert_params(params))
                if cur.description:
                    return [dict(row) for row in cur.fetchall()]
                return []

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """Execute query, return first value of first row or None."""
        with translate_errors():
            with self._conn.cursor() as cur:
                cur.execute(query, _convert_params(params))
                result = cur.fetchone()
                return result[0] if result else None

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, return results."""
        return self.execute(query, params)

    def execute_rowcount(self, query: str, params: Params = None) -> int:
        """Execute UPDATE/DELETE without RETURNING, return affected row count."""
        with translate_errors():
            with self._conn.cursor() as cur:
                cur.execute(query, _convert_params(params))
                return cur.rowcount


class PostgresClient:
    """
    PostgreSQL client with pooled connections and explicit transactions.

    Usage:
        db = PostgresClient(database_url)

        # Autocommitted single statement
        rows = db.execute("SELECT * FROM customers WHERE phone = %s", (phone,))

        # Unit of work: all or nothing
        with db.transaction() as tx:
            tx.execute("UPDATE orders SET customer_phone = %s WHERE customer_phone = %s", ...)
            tx.execute("DELETE FROM customers WHERE phone = %s", ...)
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(
        self,
        database_url: str,
        statement_timeout_ms: int = 15000,
        isolation_level: str = "READ COMMITTED",
        minconn: int = 2,
        maxconn: int = 20,
    ):
        if isolation_level not in _ISOLATION_LEVELS:
            raise ValueError(f"Unknown isolation level: {isolation_level}")

        self._database_url = database_url
        self.statement_timeout_ms = statement_timeout_ms
        self.isolation_level = isolation_level
        self._minconn = minconn
        self._maxconn = maxconn
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                with translate_errors():
                    pool = psycopg2.pool.ThreadedConnectionPool(
                        minconn=self._minconn,
                        maxconn=self._maxconn,
                        dsn=self._database_url,
                        connect_timeout=30,
                        options=f"-c statement_timeout={int(self.statement_timeout_ms)}",
                    )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; any transaction left open is rolled back on return."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            with translate_errors():
                conn = pool.getconn()
            if conn is None:
                raise TransientStoreError("Could not get connection from pool")

            yield conn

        finally:
            if conn is not None:
                if not conn.closed and conn.status != psycopg2.extensions.STATUS_READY:
                    conn.rollback()
                pool.putconn(conn, close=bool(conn.closed))

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a unit of work in one database transaction.

        Commits when the block exits normally; rolls back and re-raises on any
        exception. The isolation level is set per transaction so pooled
        connections keep their defaults.
        """
        with self.get_connection() as conn:
            tx = Transaction(conn)
            try:
                with translate_errors():
                    with conn.cursor() as cur:
                        cur.execute(f"SET TRANSACTION ISOLATION LEVEL {self.isolation_level}")
                yield tx
                with translate_errors():
                    conn.commit()
            except BaseException:
                logger.warning("Transaction rolled back")
                if not conn.closed:
                    conn.rollback()
                raise

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self.transaction() as tx:
            return tx.execute_scalar(query, params)

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        with self.transaction() as tx:
            return tx.execute_returning(query, params)

    def execute_rowcount(self, query: str, params: Params = None) -> int:
        """Execute UPDATE/DELETE, return affected row count."""
        with self.transaction() as tx:
            return tx.execute_rowcount(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
