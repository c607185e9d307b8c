"""
PostgreSQL client with connection pooling and per-tenant session context.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation is enforced via
PostgreSQL Row Level Security - the client reads the user and organization
IDs from contextvars and sets app.current_user_id / app.current_organization_id
on each connection before handing it out.

Security: No tenant context = see nothing (RLS blocks all rows). This is safe.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID, uuid4

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.tenant_context import _current_user_id, _current_organization_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvars.

    Usage:
        db = PostgresClient(database_url)

        with tenant_context(user_id, org_id):
            invoices = db.execute("SELECT * FROM invoices")  # Organization's rows only

        # Multi-statement unit of work (commit on success, rollback on error)
        with db.transaction() as cur:
            cur.execute("SELECT ... FOR UPDATE", params)
            cur.execute("INSERT ...", params)

        # Lazy iteration over a large result via a server-side cursor
        for row in db.stream("SELECT * FROM invoice_events WHERE invoice_id = %s", (id,)):
            ...
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Get connection with RLS context from contextvars."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            user_id = _current_user_id.get()
            organization_id = _current_organization_id.get()

            with conn.cursor() as cur:
                # Empty string fails the ::uuid cast in RLS policies = no rows
                cur.execute(
                    "SELECT set_config('app.current_user_id', %s, false), "
                    "set_config('app.current_organization_id', %s, false)",
                    (
                        str(user_id) if user_id is not None else "",
                        str(organization_id) if organization_id is not None else "",
                    ),
                )

            yield conn

        finally:
            if conn:
                if not conn.closed:
                    conn.rollback()
                pool.putconn(conn)

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                if cur.description:
                    return [dict(row) for row in cur.fetchall()]
                conn.commit()
                return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
                return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                conn.commit()
                return [dict(row) for row in cur.fetchall()]

    @contextmanager
    def transaction(self) -> Iterator["TransactionCursor"]:
        """
        Run several statements as one unit of work.

        Commits when the block exits normally, rolls back on any exception
        (including domain errors raised by the caller mid-transaction).
        """
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                tx = TransactionCursor(cur, self._convert_params)
                try:
                    yield tx
                except BaseException:
                    conn.rollback()
                    raise
                conn.commit()

    def stream(
        self,
        query: str,
        params: Tuple | Dict | None = None,
        batch_size: int = 200,
    ) -> Iterator[Dict[str, Any]]:
        """
        Lazily yield row dicts using a server-side (named) cursor.

        Rows are fetched from the server batch_size at a time. The generator
        holds a pooled connection until it is exhausted or closed.
        """
        params = self._convert_params(params)
        with self.get_connection() as conn:
            cursor_name = f"stream_{uuid4().hex}"
            with conn.cursor(name=cursor_name, cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.itersize = batch_size
                cur.execute(query, params)
                for row in cur:
                    yield dict(row)

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


class TransactionCursor:
    """Thin wrapper over a RealDictCursor that applies the client's param conversion."""

    def __init__(self, cursor, convert_params):
        self._cursor = cursor
        self._convert_params = convert_params

    def execute(self, query: str, params: Tuple | Dict | None = None) -> None:
        self._cursor.execute(query, self._convert_params(params))

    def fetchone(self) -> Dict[str, Any] | None:
        row = self._cursor.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._cursor.fetchall()]

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount
