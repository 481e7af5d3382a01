"""
SQL-backed datastore.

Stores values in a single table:

    CREATE TABLE blocks (key TEXT PRIMARY KEY, data BYTEA);

Every operation is one parameterized statement on a pooled connection.
Queries keep their connection checked out until the returned Results is
closed or fully drained.
"""

from pathlib import Path
from typing import Any, Callable, Optional

from pgds.backend.pool import ConnectionPool, PostgresPool, SQLitePool
from pgds.core.batch import SQLBatch
from pgds.core.config import DatastoreOptions
from pgds.errors import BackendError, NotFoundError
from pgds.core.interface import Batching, KeyLike
from pgds.core.key import Key
from pgds.core.query import Query
from pgds.core.results import Results, cursor_results
from pgds.core.statements import Statement, StatementBuilder
from pgds.utils.logger import get_logger

logger = get_logger("datastore")


class SQLDatastore(Batching):
    """
    Datastore over one table reached through an injected connection pool.

    Args:
        pool: Connection pool for the target engine
        table: Table holding (key, data) rows
    """

    def __init__(self, pool: ConnectionPool, table: str = "blocks"):
        self._pool = pool
        self._builder = StatementBuilder(table, pool.dialect)
        self.table = self._builder.table
        logger.info(f"Datastore opened on {pool.dialect.name} table '{self.table}'")

    @property
    def pool(self) -> ConnectionPool:
        """The underlying connection pool."""
        return self._pool

    @property
    def builder(self) -> StatementBuilder:
        return self._builder

    # =========================================================================
    # Execution helpers
    # =========================================================================

    def _run(self, stmt: Statement, handle: Callable[[Any], Any]) -> Any:
        """Execute ``stmt`` on a pooled connection and pass the cursor to ``handle``."""
        errors = self._pool.dialect.errors
        logger.debug(f"SQL: {stmt.sql}")
        with self._pool.connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(stmt.sql, stmt.params)
                return handle(cursor)
            except errors as exc:
                logger.error(f"Statement failed: {exc}")
                raise BackendError(str(exc), cause=exc) from exc
            finally:
                cursor.close()

    def _fetch_one(self, stmt: Statement):
        return self._run(stmt, lambda cursor: cursor.fetchone())

    # =========================================================================
    # Single Key Operations
    # =========================================================================

    def get(self, key: KeyLike) -> bytes:
        key = Key(key)
        row = self._fetch_one(self._builder.get(key))
        if row is None:
            raise NotFoundError(str(key))
        # NULL data reads as an empty value
        return bytes(row[0]) if row[0] is not None else b""

    def has(self, key: KeyLike) -> bool:
        key = Key(key)
        row = self._fetch_one(self._builder.has(key))
        if row is None:
            # exists() always returns a row; no row is treated like get()
            raise NotFoundError(str(key))
        return bool(row[0])

    def get_size(self, key: KeyLike) -> int:
        key = Key(key)
        row = self._fetch_one(self._builder.size(key))
        if row is None:
            raise NotFoundError(str(key), size=-1)
        return int(row[0]) if row[0] is not None else 0

    def put(self, key: KeyLike, value: bytes) -> None:
        self._run(self._builder.put(Key(key), value), lambda cursor: None)

    def delete(self, key: KeyLike) -> None:
        self._run(self._builder.delete(Key(key)), lambda cursor: None)

    def sync(self, prefix: KeyLike) -> None:
        """No-op: statements are durable once they return."""

    # =========================================================================
    # Queries & Batches
    # =========================================================================

    def query(self, query: Query) -> Results:
        """
        Run ``query`` and return a lazy Results.

        The returned Results holds a pooled connection until it is closed
        or drained; use it as a context manager when stopping early.

        Raises:
            BackendError: If the statement cannot be executed
        """
        plan = self._builder.translate(query)
        stmt = plan.statement
        errors = self._pool.dialect.errors
        logger.debug(f"Query {query}: SQL: {stmt.sql}")

        conn = self._pool.acquire()
        cursor = None
        try:
            cursor = self._pool.open_cursor(conn, streaming=True)
            cursor.execute(stmt.sql, stmt.params)
        except BaseException as exc:
            if cursor is not None:
                self._close_cursor(cursor)
            self._pool.release(conn)
            if isinstance(exc, errors):
                logger.error(f"Query failed: {exc}")
                raise BackendError(str(exc), cause=exc) from exc
            raise

        results = cursor_results(
            query,
            cursor,
            plan.decode,
            errors,
            release=lambda: self._pool.release(conn),
        )
        return plan.apply(results)

    def _close_cursor(self, cursor: Any) -> None:
        try:
            cursor.close()
        except self._pool.dialect.errors as exc:
            logger.debug(f"Ignoring error closing cursor: {exc}")

    def batch(self) -> SQLBatch:
        return SQLBatch(self._pool, self._builder)

    def close(self) -> None:
        self._pool.close()
        logger.info(f"Datastore on table '{self.table}' closed")


# =============================================================================
# Factory
# =============================================================================


def create_pool(conn_string: str, options: DatastoreOptions) -> ConnectionPool:
    """
    Pick a pool implementation from the connection string.

    - ``postgres://...``, ``postgresql://...`` or a libpq keyword string
      (``host=... dbname=...``): PostgreSQL
    - ``sqlite:///relative.db``, ``sqlite:////absolute/path.db``, ``sqlite://``
      (in memory) or a bare path ending in .db / .sqlite / .sqlite3: SQLite

    Raises:
        ValueError: If a sqlite URL carries a host part (``sqlite://foo.db``)
    """
    if conn_string.startswith("sqlite://"):
        rest = conn_string[len("sqlite://"):]
        if rest and not rest.startswith("/"):
            raise ValueError(
                f"sqlite URL has a host part: {conn_string!r} "
                f"(use sqlite:///relative.db or sqlite:////absolute/path.db)"
            )
        path = rest[1:] or ":memory:"
        return SQLitePool(
            path,
            max_connections=options.max_connections,
            acquire_timeout=options.acquire_timeout,
        )
    if Path(conn_string).suffix in (".db", ".sqlite", ".sqlite3"):
        return SQLitePool(
            conn_string,
            max_connections=options.max_connections,
            acquire_timeout=options.acquire_timeout,
        )
    return PostgresPool(
        conn_string,
        max_connections=options.max_connections,
        acquire_timeout=options.acquire_timeout,
    )


def open_datastore(
    conn_string: str,
    options: Optional[DatastoreOptions] = None,
    **overrides,
) -> SQLDatastore:
    """
    Open a datastore for ``conn_string``.

    Args:
        conn_string: Database connection string
        options: Base options (defaults when omitted)
        **overrides: Individual option values, e.g. ``table="blocks"``

    Returns:
        SQLDatastore ready for use
    """
    if options is None:
        options = DatastoreOptions(**overrides)
    elif overrides:
        options = DatastoreOptions(**{**options.model_dump(), **overrides})

    pool = create_pool(conn_string, options)
    logger.info(
        f"Created {pool.dialect.name} pool (max_connections={options.max_connections})"
    )
    return SQLDatastore(pool, table=options.table)
