"""DuckDB connection manager and initialization."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import duckdb

from dex_collector.config.settings import DEFAULT_DB_PATH, resolve_db_path
from dex_collector.storage.schema import MIGRATION_COLUMNS, SCHEMA_DDL

__all__ = ["Database", "DEFAULT_DB_PATH", "resolve_db_path"]


class Database:
    """DuckDB database connection manager."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self.db_path = db_path
        self._conn: duckdb.DuckDBPyConnection | None = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _connect(self) -> duckdb.DuckDBPyConnection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(self.db_path)

    def initialize(self) -> None:
        """Create all tables if they don't exist, then run migrations."""
        self.conn.execute(SCHEMA_DDL)
        self._migrate()

    def _migrate(self) -> None:
        """Add new columns to existing tables (idempotent)."""
        for table, col_name, col_type in MIGRATION_COLUMNS:
            self.conn.execute(
                f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {col_name} {col_type}"
            )

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block in one transaction; roll back if it raises."""
        self.conn.execute("BEGIN TRANSACTION")
        try:
            yield self.conn
        except Exception:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Database:
        self.initialize()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
