"""
SQL dialects.

The datastore issues the same statements against every engine. A Dialect
only captures the handful of spellings that differ between them.
"""

import sqlite3
from dataclasses import dataclass
from typing import Tuple

import psycopg2


@dataclass(frozen=True)
class Dialect:
    """
    Per-engine SQL spelling.

    Attributes:
        name: Engine name, for logging
        placeholder: Bound parameter marker (DB-API paramstyle)
        size_function: Function returning the byte length of a BLOB/BYTEA
        unbounded_limit: LIMIT argument meaning "no limit" (needed when
            only an OFFSET is pushed down)
        errors: Driver exception types mapped to BackendError
        joins_batches: Batches are sent as one multi-statement string
            (needs a driver that can render bound parameters client-side)
    """
    name: str
    placeholder: str
    size_function: str
    unbounded_limit: str
    errors: Tuple[type, ...]
    joins_batches: bool = False


POSTGRES = Dialect(
    name="postgres",
    placeholder="%s",
    size_function="octet_length",
    unbounded_limit="ALL",
    errors=(psycopg2.Error,),
    joins_batches=True,
)

SQLITE = Dialect(
    name="sqlite",
    placeholder="?",
    size_function="length",
    unbounded_limit="-1",
    errors=(sqlite3.Error,),
)
