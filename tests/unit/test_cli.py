"""
Unit tests for the pgds command line interface.
"""

import sqlite3

import pytest
from click.testing import CliRunner

import pgds.cli.main as cli_main
from pgds.cli.main import cli


@pytest.fixture
def dsn(tmp_path):
    """SQLite database with an empty blocks table."""
    path = tmp_path / "cli.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE blocks (key TEXT PRIMARY KEY, data BLOB)")
    conn.commit()
    conn.close()
    return f"sqlite:///{path}"


@pytest.fixture
def run(dsn, monkeypatch):
    """Invoke the CLI against the test database."""
    # Keep the test session's logging handlers intact
    monkeypatch.setattr(cli_main, "setup_logging", lambda level: None)
    monkeypatch.delenv("PGDS_TABLE", raising=False)
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(cli, ["--dsn", dsn, *args], obj={}, **kwargs)

    return invoke


class TestCLI:
    """Tests for CLI commands."""

    def test_put_get(self, run):
        result = run("put", "/a/1", "hello")
        assert result.exit_code == 0, result.output
        assert "/a/1 (5 bytes)" in result.output

        result = run("get", "--hex", "/a/1")
        assert result.exit_code == 0
        assert result.output.strip() == b"hello".hex()

    def test_put_from_stdin(self, run):
        result = run("put", "/a/1", "--file", "-", input="from stdin")
        assert result.exit_code == 0, result.output
        assert run("size", "/a/1").output.strip() == "10"

    def test_put_requires_one_value(self, run):
        result = run("put", "/a/1")
        assert result.exit_code != 0
        assert "exactly one" in result.output

    def test_get_missing(self, run):
        result = run("get", "/missing")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_has(self, run):
        run("put", "/a", "x")
        assert run("has", "/a").exit_code == 0
        result = run("has", "/b")
        assert result.exit_code == 1
        assert result.output.strip() == "no"

    def test_delete(self, run):
        run("put", "/a", "x")
        assert run("delete", "/a").exit_code == 0
        assert run("has", "/a").exit_code == 1
        # Deleting again is fine
        assert run("delete", "/a").exit_code == 0

    def test_query(self, run):
        for key in ["/a/1", "/a/2", "/ab"]:
            run("put", key, "vv")

        result = run("query", "--prefix", "/a", "--keys-only")
        assert result.exit_code == 0
        assert result.output.splitlines() == ["/a/1", "/a/2"]

        result = run("query", "--prefix", "/a", "--keys-only", "--sizes")
        assert result.output.splitlines() == ["/a/1\t2", "/a/2\t2"]

        result = run("query", "--prefix", "/a", "--order", "key-desc", "--limit", "1")
        assert result.output.splitlines() == [f"/a/2\t{b'vv'.hex()}"]

    def test_query_value_filter(self, run):
        run("put", "/a/1", "x")
        run("put", "/a/2", "y")
        result = run("query", "--keys-only", "--value-equals", "y")
        # keys-only entries carry no value, so nothing matches
        assert result.output == ""
        result = run("query", "--value-equals", "y")
        assert result.output.splitlines() == [f"/a/2\t{b'y'.hex()}"]

    def test_missing_dsn(self, monkeypatch):
        monkeypatch.setattr(cli_main, "setup_logging", lambda level: None)
        monkeypatch.setattr(cli_main, "load_connection_string", lambda env_file: None)
        result = CliRunner().invoke(cli, ["get", "/a"], obj={})
        assert result.exit_code == 2
        assert "no connection string" in result.output
