"""Shared fixtures: a SQLite-backed datastore on a fresh table."""

import pytest

from pgds.backend.pool import SQLitePool
from pgds.core.datastore import SQLDatastore

SCHEMA = "CREATE TABLE {table} (key TEXT PRIMARY KEY, data BLOB)"


@pytest.fixture
def pool(tmp_path):
    """Create a small SQLite pool with the blocks table."""
    p = SQLitePool(tmp_path / "datastore.db", max_connections=4, acquire_timeout=0.2)
    with p.connection() as conn:
        conn.execute(SCHEMA.format(table="blocks"))
    yield p
    p.close()


@pytest.fixture
def store(pool):
    """Create a datastore over the blocks table."""
    return SQLDatastore(pool, table="blocks")


@pytest.fixture
def numbered(store):
    """Store /k/0 .. /k/9 with values b"v0" .. b"v9"."""
    for i in range(10):
        store.put(f"/k/{i}", f"v{i}".encode())
    return store
