"""
pgds - SQL-backed key/value datastore

Stores binary values under hierarchical keys in a single
(key TEXT PRIMARY KEY, data BYTEA) table:
- PostgreSQL via psycopg2, SQLite via sqlite3
- Lazy prefix queries with in-memory filters, orders and pagination
- Batched writes over a single connection
"""

__version__ = "0.1.0"
