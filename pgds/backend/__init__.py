"""Database engines: SQL dialects and connection pools"""
from pgds.backend.dialect import Dialect, POSTGRES, SQLITE
from pgds.backend.pool import ConnectionPool, PostgresPool, SQLitePool

__all__ = [
    "Dialect",
    "POSTGRES",
    "SQLITE",
    "ConnectionPool",
    "PostgresPool",
    "SQLitePool",
]
