"""
Bounded connection pools.

The datastore never opens connections itself: it is handed a pool and
checks connections out per operation. A query keeps its connection checked
out until its Results is closed or drained, so long-lived open result sets
starve the pool.

Every pooled connection runs in autocommit mode, so each statement is
durable once it returns. The one exception is a streaming PostgreSQL query,
which holds its connection inside a read transaction until release rolls
it back.
"""

import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Union

import psycopg2

from pgds.backend.dialect import Dialect, POSTGRES, SQLITE
from pgds.errors import BackendError, PoolExhaustedError
from pgds.utils.logger import get_logger

logger = get_logger("pool")


class ConnectionPool(ABC):
    """
    Thread-safe pool holding at most ``max_connections`` connections.

    Idle connections are reused; new ones are opened lazily up to the bound.
    ``acquire`` blocks for up to ``acquire_timeout`` seconds when every
    connection is checked out, then raises PoolExhaustedError.
    """

    dialect: Dialect

    def __init__(self, max_connections: int = 10, acquire_timeout: float = 30.0):
        if max_connections < 1:
            raise ValueError(f"max_connections must be >= 1, got {max_connections}")
        self.max_connections = max_connections
        self.acquire_timeout = acquire_timeout
        self._slots = threading.BoundedSemaphore(max_connections)
        self._lock = threading.Lock()
        self._idle: List[Any] = []
        self._in_use = 0
        self._closed = False

    @abstractmethod
    def _connect(self) -> Any:
        """Open a new DB-API connection in autocommit mode."""

    def _is_broken(self, conn: Any) -> bool:
        return False

    def _reset(self, conn: Any) -> bool:
        """Return a released connection to its idle state; False discards it."""
        return not self._is_broken(conn)

    @property
    def in_use(self) -> int:
        """Number of connections currently checked out."""
        with self._lock:
            return self._in_use

    @property
    def idle(self) -> int:
        with self._lock:
            return len(self._idle)

    def acquire(self) -> Any:
        if self._closed:
            raise BackendError("connection pool is closed")
        if not self._slots.acquire(timeout=self.acquire_timeout):
            raise PoolExhaustedError(
                f"no connection available after {self.acquire_timeout}s "
                f"({self.max_connections} in use)"
            )
        with self._lock:
            conn = self._idle.pop() if self._idle else None
            self._in_use += 1
        if conn is not None:
            return conn
        try:
            conn = self._connect()
        except self.dialect.errors as exc:
            with self._lock:
                self._in_use -= 1
            self._slots.release()
            logger.error(f"Failed to open {self.dialect.name} connection: {exc}")
            raise BackendError(str(exc), cause=exc) from exc
        logger.debug(f"Opened {self.dialect.name} connection")
        return conn

    def release(self, conn: Any) -> None:
        keep = not self._closed and self._reset(conn)
        with self._lock:
            self._in_use -= 1
            discard = self._closed or not keep
            if not discard:
                self._idle.append(conn)
        if discard:
            self._close_quietly(conn)
        self._slots.release()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Check a connection out for the duration of the block."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def open_cursor(self, conn: Any, streaming: bool = False) -> Any:
        """Open a cursor; ``streaming`` asks for server-side row streaming."""
        return conn.cursor()

    def close(self) -> None:
        """Close idle connections; checked-out ones close on release."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            idle, self._idle = self._idle, []
        for conn in idle:
            self._close_quietly(conn)
        logger.info(f"Closed {self.dialect.name} connection pool")

    def _close_quietly(self, conn: Any) -> None:
        try:
            conn.close()
        except self.dialect.errors as exc:
            logger.debug(f"Ignoring error closing connection: {exc}")


class PostgresPool(ConnectionPool):
    """Pool of psycopg2 connections to a PostgreSQL server."""

    dialect = POSTGRES

    def __init__(
        self,
        dsn: str,
        max_connections: int = 10,
        acquire_timeout: float = 30.0,
        itersize: int = 2000,
    ):
        super().__init__(max_connections, acquire_timeout)
        self.dsn = dsn
        self.itersize = itersize

    def _connect(self) -> Any:
        conn = psycopg2.connect(self.dsn)
        conn.autocommit = True
        return conn

    def _is_broken(self, conn: Any) -> bool:
        return conn.closed != 0

    def _reset(self, conn: Any) -> bool:
        if self._is_broken(conn):
            return False
        if conn.autocommit:
            return True
        # End the transaction a streaming query opened
        try:
            conn.rollback()
            conn.autocommit = True
        except psycopg2.Error as exc:
            logger.debug(f"Discarding connection that failed to reset: {exc}")
            return False
        return True

    def open_cursor(self, conn: Any, streaming: bool = False) -> Any:
        """
        Open a cursor on ``conn``.

        A streaming cursor is a named (server-side) cursor declared inside a
        transaction, so rows are produced ``itersize`` at a time as they are
        fetched and closing the cursor stops the scan. The transaction is
        rolled back when the connection is released.
        """
        if not streaming:
            return conn.cursor()
        conn.autocommit = False
        cursor = conn.cursor(name=f"pgds_{uuid.uuid4().hex}")
        cursor.itersize = self.itersize
        return cursor


class SQLitePool(ConnectionPool):
    """
    Pool of sqlite3 connections to one database file.

    Each connection enables WAL mode so readers holding an open query do
    not block writers on other connections, and turns on case-sensitive
    LIKE so prefix matching agrees with PostgreSQL.
    """

    dialect = SQLITE

    def __init__(
        self,
        db_path: Union[str, Path],
        max_connections: int = 10,
        acquire_timeout: float = 30.0,
    ):
        super().__init__(max_connections, acquire_timeout)
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            parent = Path(self.db_path).parent
            if not parent.exists():
                parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> Any:
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            check_same_thread=False,
            isolation_level=None,
        )
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA case_sensitive_like=ON;")
        return conn
