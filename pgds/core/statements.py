"""
SQL statement construction.

StatementBuilder turns datastore operations into parameterized SQL against
a single table shaped ``(key TEXT PRIMARY KEY, data BYTEA)``.

The table name is the only identifier ever formatted into SQL text; it is
validated when the builder is created. Keys, values, LIKE patterns, limits
and offsets are always bound parameters.

Query translation:
    1. Projection: (key, size) / (key) / (key, data)
    2. Prefix other than root: WHERE key LIKE '<prefix>/%' ORDER BY key
    3. No filters and no orders: LIMIT / OFFSET pushed into SQL
    4. Otherwise filters, orders, offset and limit run in memory, in that
       order, over the unlimited row stream
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Tuple

from pgds.backend.dialect import Dialect
from pgds.core.key import Key, ROOT, SEPARATOR
from pgds.core.query import Entry, Filter, Order, Query
from pgds.core.results import (
    Results,
    naive_filter,
    naive_limit,
    naive_offset,
    naive_order,
)


# =============================================================================
# Identifiers
# =============================================================================

MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_table_name(table: str) -> str:
    """
    Check ``table`` against the identifier allow-list.

    Accepts ``name`` or ``schema.name``; each part must be a plain SQL
    identifier of at most 63 characters.

    Raises:
        ValueError: If the name is not allowed
    """
    if not isinstance(table, str) or not table:
        raise ValueError("table name must be a non-empty string")
    parts = table.split(".")
    if len(parts) > 2:
        raise ValueError(f"table name has too many parts: {table!r}")
    for part in parts:
        if len(part) > MAX_IDENTIFIER_LENGTH or not _IDENTIFIER.match(part):
            raise ValueError(f"invalid table name: {table!r}")
    return table


def escape_like(text: str) -> str:
    """Escape LIKE metacharacters so ``text`` matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# =============================================================================
# Statements & Plans
# =============================================================================


@dataclass(frozen=True)
class Statement:
    sql: str
    params: Tuple[Any, ...] = ()


class Projection(Enum):
    KEYS = "keys"
    KEYS_AND_SIZES = "keys_and_sizes"
    ENTRIES = "entries"

    @classmethod
    def for_query(cls, query: Query) -> "Projection":
        if query.keys_only and query.returns_sizes:
            return cls.KEYS_AND_SIZES
        if query.keys_only:
            return cls.KEYS
        return cls.ENTRIES


@dataclass(frozen=True)
class QueryPlan:
    """
    A translated query: the SQL to run plus what is left to do in memory.

    ``offset`` and ``limit`` here are the naive ones; they are zero when
    the database already applied them.
    """
    query: Query
    statement: Statement
    projection: Projection
    filters: Tuple[Filter, ...] = field(default_factory=tuple)
    orders: Tuple[Order, ...] = field(default_factory=tuple)
    offset: int = 0
    limit: int = 0

    @property
    def pushed_down(self) -> bool:
        """True when the database does all the work."""
        return not (self.filters or self.orders or self.offset or self.limit)

    def decode(self, row: Sequence[Any]) -> Entry:
        """Decode one row according to the projection."""
        if self.projection is Projection.KEYS_AND_SIZES:
            return Entry(key=row[0], size=int(row[1]) if row[1] is not None else 0)
        if self.projection is Projection.KEYS:
            return Entry(key=row[0])
        value = bytes(row[1]) if row[1] is not None else b""
        entry = Entry(key=row[0], value=value)
        if self.query.returns_sizes:
            entry.size = len(value)
        return entry

    def apply(self, results: Results) -> Results:
        """Stack the in-memory stages: filter, order, offset, limit."""
        for flt in self.filters:
            results = naive_filter(results, flt)
        if self.orders:
            results = naive_order(results, self.orders)
        if self.offset:
            results = naive_offset(results, self.offset)
        if self.limit:
            results = naive_limit(results, self.limit)
        return results


# =============================================================================
# Builder
# =============================================================================


class StatementBuilder:
    """
    Builds statements for one table in one SQL dialect.

    Args:
        table: Table name (validated against the identifier allow-list)
        dialect: SQL dialect of the target engine
    """

    def __init__(self, table: str, dialect: Dialect):
        self.table = validate_table_name(table)
        self.dialect = dialect
        p = dialect.placeholder
        size = dialect.size_function
        t = self.table

        self._get = f"SELECT data FROM {t} WHERE key = {p}"
        self._has = f"SELECT exists(SELECT 1 FROM {t} WHERE key = {p})"
        self._size = f"SELECT {size}(data) FROM {t} WHERE key = {p}"
        self._put = (
            f"INSERT INTO {t} (key, data) VALUES ({p}, {p}) "
            f"ON CONFLICT (key) DO UPDATE SET data = excluded.data"
        )
        self._delete = f"DELETE FROM {t} WHERE key = {p}"

    # -------------------------------------------------------------------------
    # Single key operations
    # -------------------------------------------------------------------------

    def get(self, key: Key) -> Statement:
        return Statement(self._get, (str(key),))

    def has(self, key: Key) -> Statement:
        return Statement(self._has, (str(key),))

    def size(self, key: Key) -> Statement:
        return Statement(self._size, (str(key),))

    def put(self, key: Key, value: bytes) -> Statement:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"value must be bytes-like, got {type(value).__name__}")
        return Statement(self._put, (str(key), bytes(value)))

    def delete(self, key: Key) -> Statement:
        return Statement(self._delete, (str(key),))

    # -------------------------------------------------------------------------
    # Query translation
    # -------------------------------------------------------------------------

    def translate(self, query: Query) -> QueryPlan:
        """Translate ``query`` into SQL plus the residual in-memory work."""
        p = self.dialect.placeholder
        projection = Projection.for_query(query)

        if projection is Projection.KEYS_AND_SIZES:
            sql = f"SELECT key, {self.dialect.size_function}(data) FROM {self.table}"
        elif projection is Projection.KEYS:
            sql = f"SELECT key FROM {self.table}"
        else:
            sql = f"SELECT key, data FROM {self.table}"
        params = []

        if query.prefix:
            prefix = str(Key(query.prefix))
            if prefix != ROOT:
                sql += f" WHERE key LIKE {p} ESCAPE '\\' ORDER BY key"
                params.append(escape_like(prefix + SEPARATOR) + "%")

        if not query.needs_naive:
            if query.limit:
                sql += f" LIMIT {p}"
                params.append(query.limit)
            elif query.offset:
                sql += f" LIMIT {self.dialect.unbounded_limit}"
            if query.offset:
                sql += f" OFFSET {p}"
                params.append(query.offset)
            return QueryPlan(
                query=query,
                statement=Statement(sql, tuple(params)),
                projection=projection,
            )

        return QueryPlan(
            query=query,
            statement=Statement(sql, tuple(params)),
            projection=projection,
            filters=query.filters,
            orders=query.orders,
            offset=query.offset,
            limit=query.limit,
        )
