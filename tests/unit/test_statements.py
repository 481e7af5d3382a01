"""
Unit tests for statement building and query translation.
"""

import pytest

from pgds.backend.dialect import POSTGRES, SQLITE
from pgds.core.key import Key
from pgds.core.query import FilterKeyPrefix, OrderByKey, Query
from pgds.core.statements import (
    Projection,
    StatementBuilder,
    escape_like,
    validate_table_name,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def pg() -> StatementBuilder:
    return StatementBuilder("blocks", POSTGRES)


@pytest.fixture
def lite() -> StatementBuilder:
    return StatementBuilder("blocks", SQLITE)


# =============================================================================
# Identifier Tests
# =============================================================================


class TestTableNames:
    """Tests for the table name allow-list."""

    @pytest.mark.parametrize("name", ["blocks", "_kv", "public.blocks", "Blocks2", "a" * 63])
    def test_allowed(self, name):
        assert validate_table_name(name) == name

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "1blocks",
            "blocks; DROP TABLE users",
            "blocks--",
            "a.b.c",
            "my-table",
            '"quoted"',
            "a" * 64,
        ],
    )
    def test_rejected(self, name):
        with pytest.raises(ValueError):
            validate_table_name(name)

    def test_builder_rejects_bad_table(self):
        with pytest.raises(ValueError):
            StatementBuilder("x y", POSTGRES)

    def test_escape_like(self):
        assert escape_like("/a_b%c\\d") == "/a\\_b\\%c\\\\d"


# =============================================================================
# Single Key Statements
# =============================================================================


class TestSingleKeyStatements:
    """Tests for get/has/size/put/delete statements."""

    def test_get(self, pg, lite):
        stmt = pg.get(Key("a/b"))
        assert stmt.sql == "SELECT data FROM blocks WHERE key = %s"
        assert stmt.params == ("/a/b",)
        assert lite.get(Key("/a/b")).sql == "SELECT data FROM blocks WHERE key = ?"

    def test_has(self, pg):
        stmt = pg.has(Key("/a"))
        assert stmt.sql == "SELECT exists(SELECT 1 FROM blocks WHERE key = %s)"
        assert stmt.params == ("/a",)

    def test_size(self, pg, lite):
        assert pg.size(Key("/a")).sql == "SELECT octet_length(data) FROM blocks WHERE key = %s"
        assert lite.size(Key("/a")).sql == "SELECT length(data) FROM blocks WHERE key = ?"

    def test_put_is_upsert(self, pg):
        stmt = pg.put(Key("/a"), b"v")
        assert stmt.sql == (
            "INSERT INTO blocks (key, data) VALUES (%s, %s) "
            "ON CONFLICT (key) DO UPDATE SET data = excluded.data"
        )
        assert stmt.params == ("/a", b"v")

    def test_put_normalizes_buffer(self, lite):
        stmt = lite.put(Key("/a"), bytearray(b"v"))
        assert stmt.params[1] == b"v"
        assert type(stmt.params[1]) is bytes

    @pytest.mark.parametrize("value", [3, "v", None, [1, 2]])
    def test_put_rejects_non_bytes(self, lite, value):
        with pytest.raises(TypeError, match="bytes-like"):
            lite.put(Key("/a"), value)

    def test_delete(self, lite):
        stmt = lite.delete(Key("/a/"))
        assert stmt.sql == "DELETE FROM blocks WHERE key = ?"
        assert stmt.params == ("/a",)

    def test_schema_qualified_table(self):
        builder = StatementBuilder("ipfs.blocks", POSTGRES)
        assert builder.get(Key("/a")).sql == "SELECT data FROM ipfs.blocks WHERE key = %s"


# =============================================================================
# Query Translation
# =============================================================================


class TestTranslate:
    """Tests for query translation and pushdown decisions."""

    def test_projections(self, pg):
        plan = pg.translate(Query(keys_only=True, returns_sizes=True))
        assert plan.statement.sql == "SELECT key, octet_length(data) FROM blocks"
        assert plan.projection is Projection.KEYS_AND_SIZES

        plan = pg.translate(Query(keys_only=True))
        assert plan.statement.sql == "SELECT key FROM blocks"
        assert plan.projection is Projection.KEYS

        plan = pg.translate(Query(returns_sizes=True))
        assert plan.statement.sql == "SELECT key, data FROM blocks"
        assert plan.projection is Projection.ENTRIES

    def test_prefix_clause(self, pg):
        plan = pg.translate(Query(prefix="/a"))
        assert plan.statement.sql == (
            "SELECT key, data FROM blocks WHERE key LIKE %s ESCAPE '\\' ORDER BY key"
        )
        assert plan.statement.params == ("/a/%",)

    def test_prefix_is_canonicalized(self, lite):
        plan = lite.translate(Query(prefix="a//b/"))
        assert plan.statement.params == ("/a/b/%",)

    def test_prefix_escapes_wildcards(self, lite):
        plan = lite.translate(Query(prefix="/a_b"))
        assert plan.statement.params == ("/a\\_b/%",)

    @pytest.mark.parametrize("prefix", ["", "/", "//", "/a/.."])
    def test_root_prefix_has_no_clause(self, pg, prefix):
        plan = pg.translate(Query(prefix=prefix))
        assert plan.statement.sql == "SELECT key, data FROM blocks"
        assert plan.statement.params == ()

    def test_limit_offset_pushdown(self, pg):
        plan = pg.translate(Query(prefix="/a", limit=5, offset=2))
        assert plan.statement.sql.endswith("ORDER BY key LIMIT %s OFFSET %s")
        assert plan.statement.params == ("/a/%", 5, 2)
        assert plan.pushed_down
        assert plan.limit == 0 and plan.offset == 0

    def test_limit_only(self, lite):
        plan = lite.translate(Query(limit=3))
        assert plan.statement.sql == "SELECT key, data FROM blocks LIMIT ?"
        assert plan.statement.params == (3,)

    def test_offset_only(self, pg, lite):
        assert pg.translate(Query(offset=4)).statement.sql == (
            "SELECT key, data FROM blocks LIMIT ALL OFFSET %s"
        )
        plan = lite.translate(Query(offset=4))
        assert plan.statement.sql == "SELECT key, data FROM blocks LIMIT -1 OFFSET ?"
        assert plan.statement.params == (4,)

    def test_zero_limit_and_offset_mean_unbounded(self, pg):
        plan = pg.translate(Query(limit=0, offset=0))
        assert "LIMIT" not in plan.statement.sql
        assert "OFFSET" not in plan.statement.sql

    def test_filters_defer_limit_and_offset(self, pg):
        flt = FilterKeyPrefix("/a/1")
        plan = pg.translate(Query(prefix="/a", filters=[flt], limit=5, offset=2))
        assert "LIMIT" not in plan.statement.sql
        assert "OFFSET" not in plan.statement.sql
        assert plan.filters == (flt,)
        assert plan.limit == 5
        assert plan.offset == 2
        assert not plan.pushed_down

    def test_orders_defer_limit(self, lite):
        order = OrderByKey()
        plan = lite.translate(Query(orders=[order], limit=1))
        assert plan.statement.sql == "SELECT key, data FROM blocks"
        assert plan.orders == (order,)
        assert plan.limit == 1


class TestDecode:
    """Tests for row decoding per projection."""

    def test_keys_and_sizes(self, pg):
        entry = pg.translate(Query(keys_only=True, returns_sizes=True)).decode(("/a", 7))
        assert entry.key == "/a"
        assert entry.size == 7
        assert entry.value is None

    def test_keys_only(self, pg):
        entry = pg.translate(Query(keys_only=True)).decode(("/a",))
        assert entry.key == "/a"
        assert entry.value is None
        assert entry.size is None

    def test_entries(self, pg):
        entry = pg.translate(Query()).decode(("/a", memoryview(b"abc")))
        assert entry.value == b"abc"
        assert type(entry.value) is bytes
        assert entry.size is None

    def test_entries_with_sizes(self, pg):
        entry = pg.translate(Query(returns_sizes=True)).decode(("/a", b"abcd"))
        assert entry.value == b"abcd"
        assert entry.size == 4
