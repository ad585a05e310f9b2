# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync SQLite Engine - Persisted snapshot table for one handle.

Each handle owns one connection and one physical table whose column
layout mirrors the declared schema. The connection runs in autocommit
mode and every mutation happens inside an explicit BEGIN IMMEDIATE ...
COMMIT, so a failed commit leaves the previous snapshot untouched.

The connection is shared across threads; callers serialize access
(the transaction coordinator holds a per-handle lock).
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog

from snapsync.config import SyncConfig
from snapsync.exceptions import SchemaError, StorageError
from snapsync.schema import SQLITE_TYPES, ColumnType, Key, Row, Schema

logger = structlog.get_logger()

MEMORY_TARGET = ":memory:"


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


def wrap_sqlite_error(action: str, exc: sqlite3.Error, **details: Any) -> StorageError:
    """Convert a sqlite3 error into a StorageError carrying the backend code."""
    return StorageError(
        f"Failed to {action}: {exc}",
        details=details,
        backend_code=getattr(exc, "sqlite_errorcode", None),
        backend_name=getattr(exc, "sqlite_errorname", None),
    )


class SQLiteStorageEngine:
    """
    SQLite-backed snapshot table.

    Responsibilities:
      - Open the database and apply tuning pragmas from SyncConfig
      - Create (or verify) the table for the schema
      - Keyed upsert/delete/get and PK-ordered full scans
      - Explicit all-or-nothing transactions
    """

    def __init__(
        self,
        path: str,
        schema: Schema,
        config: Optional[SyncConfig] = None,
        in_memory: bool = False,
    ):
        self.path = path
        self.schema = schema
        self.config = config or SyncConfig()
        self.in_memory = in_memory
        self._conn: Optional[sqlite3.Connection] = None
        self._in_transaction = False

        table = _quote(schema.table)
        columns = ", ".join(_quote(c) for c in schema.column_names)
        placeholders = ", ".join("?" for _ in schema.columns)
        key_columns = ", ".join(_quote(c) for c in schema.primary_key)
        key_match = " AND ".join(f"{_quote(c)} = ?" for c in schema.primary_key)

        value_columns = [c.name for c in schema.value_columns]
        if value_columns:
            assignments = ", ".join(f"{_quote(c)} = excluded.{_quote(c)}" for c in value_columns)
            conflict = f"ON CONFLICT({key_columns}) DO UPDATE SET {assignments}"
        else:
            conflict = f"ON CONFLICT({key_columns}) DO NOTHING"

        self._upsert_sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) {conflict}"
        self._delete_sql = f"DELETE FROM {table} WHERE {key_match}"
        self._get_sql = f"SELECT {columns} FROM {table} WHERE {key_match}"
        self._scan_sql = f"SELECT {columns} FROM {table} ORDER BY {key_columns}"
        self._count_sql = f"SELECT COUNT(*) FROM {table}"

    # --- Lifecycle ------------------------------------------------------------------
    def open(self) -> None:
        """
        Open the database and make sure the table exists.

        Raises:
            StorageError: If the database cannot be opened or created
            SchemaError: If an existing table has a different layout
        """
        if self._conn is not None:
            return

        if self.in_memory:
            target = MEMORY_TARGET
        else:
            db_path = Path(self.path)
            if db_path.is_dir():
                raise StorageError(
                    f"Path points to a directory, expected file: {self.path}",
                    details={"path": self.path},
                )
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Failed to create database directory: {e}",
                    details={"path": self.path},
                )
            target = str(db_path)

        try:
            conn = sqlite3.connect(target, isolation_level=None, check_same_thread=False)
        except sqlite3.Error as e:
            raise wrap_sqlite_error("open database", e, path=self.path)

        try:
            self._apply_pragmas(conn)
        except sqlite3.Error as e:
            conn.close()
            raise wrap_sqlite_error("configure database", e, path=self.path)

        self._conn = conn
        try:
            self.create_table_if_absent()
        except Exception:
            self.close()
            raise

        logger.info(
            "storage_opened",
            path=self.path,
            table=self.schema.table,
            in_memory=self.in_memory,
        )

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            if self._in_transaction:
                conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning("storage_rollback_on_close_failed", path=self.path, error=str(e))
        finally:
            self._in_transaction = False
            conn.close()
        logger.info("storage_closed", path=self.path, table=self.schema.table)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def create_table_if_absent(self) -> None:
        """
        Create the snapshot table, or verify an existing one matches the schema.

        No migration is attempted: a mismatching table is a SchemaError.
        """
        conn = self._connection()
        table = self.schema.table
        try:
            existing = conn.execute(f"PRAGMA table_info({_quote(table)})").fetchall()
        except sqlite3.Error as e:
            raise wrap_sqlite_error("inspect table", e, table=table)

        if existing:
            self._verify_layout(existing)
            return

        definitions = []
        for column in self.schema.columns:
            parts = [_quote(column.name)]
            if SQLITE_TYPES[column.type]:
                parts.append(SQLITE_TYPES[column.type])
            if not column.nullable:
                parts.append("NOT NULL")
            definitions.append(" ".join(parts))
        key_columns = ", ".join(_quote(c) for c in self.schema.primary_key)
        definitions.append(f"PRIMARY KEY ({key_columns})")

        try:
            conn.execute(f"CREATE TABLE IF NOT EXISTS {_quote(table)} ({', '.join(definitions)})")
        except sqlite3.Error as e:
            raise wrap_sqlite_error("create table", e, table=table)

    # --- Transactions ---------------------------------------------------------------
    def begin(self) -> None:
        if self._in_transaction:
            raise StorageError("Transaction already open", details={"table": self.schema.table})
        try:
            self._connection().execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise wrap_sqlite_error("begin transaction", e, table=self.schema.table)
        self._in_transaction = True

    def commit(self) -> None:
        """Commit the open transaction; on failure everything since begin() is undone."""
        self._require_transaction()
        try:
            self._connection().execute("COMMIT")
        except sqlite3.Error as e:
            self.rollback()
            raise wrap_sqlite_error("commit transaction", e, table=self.schema.table)
        self._in_transaction = False

    def rollback(self) -> None:
        if not self._in_transaction:
            return
        conn = self._connection()
        self._in_transaction = False
        # SQLite may already have rolled back on its own after some errors
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                raise wrap_sqlite_error("roll back transaction", e, table=self.schema.table)

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStorageEngine"]:
        """Run a block atomically: commit on success, roll back on any error."""
        self.begin()
        try:
            yield self
        except BaseException as e:
            try:
                self.rollback()
            except StorageError as rollback_error:
                logger.warning(
                    "storage_rollback_failed",
                    table=self.schema.table,
                    error=str(rollback_error),
                    original_error=str(e),
                )
            raise
        self.commit()

    # --- Row access -----------------------------------------------------------------
    def upsert(self, row: Row) -> None:
        self._require_transaction()
        values = [self._encode(row.get(name)) for name in self.schema.column_names]
        try:
            self._connection().execute(self._upsert_sql, values)
        except sqlite3.Error as e:
            raise wrap_sqlite_error(
                "upsert row", e, table=self.schema.table, key=self.schema.key_dict(self.schema.key_of(row))
            )

    def delete(self, key: Key) -> None:
        self._require_transaction()
        try:
            self._connection().execute(self._delete_sql, list(key))
        except sqlite3.Error as e:
            raise wrap_sqlite_error(
                "delete row", e, table=self.schema.table, key=self.schema.key_dict(key)
            )

    def get(self, key: Key) -> Optional[Row]:
        try:
            record = self._connection().execute(self._get_sql, list(key)).fetchone()
        except sqlite3.Error as e:
            raise wrap_sqlite_error("read row", e, table=self.schema.table)
        return self._decode(record) if record is not None else None

    def scan_all(self) -> List[Row]:
        try:
            records = self._connection().execute(self._scan_sql).fetchall()
        except sqlite3.Error as e:
            raise wrap_sqlite_error("scan table", e, table=self.schema.table)
        return [self._decode(record) for record in records]

    def count(self) -> int:
        try:
            return self._connection().execute(self._count_sql).fetchone()[0]
        except sqlite3.Error as e:
            raise wrap_sqlite_error("count rows", e, table=self.schema.table)

    def describe(self) -> Dict[str, Any]:
        """Current pragma values and basic status."""
        conn = self._connection()
        try:
            pragmas = {
                name: conn.execute(f"PRAGMA {name}").fetchone()[0]
                for name in ("journal_mode", "synchronous", "busy_timeout")
            }
        except sqlite3.Error as e:
            raise wrap_sqlite_error("read pragmas", e, table=self.schema.table)
        return {
            "path": self.path,
            "table": self.schema.table,
            "in_memory": self.in_memory,
            **pragmas,
            "rows": self.count(),
        }

    # --- Internal -------------------------------------------------------------------
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Storage is not open", details={"path": self.path})
        return self._conn

    def _require_transaction(self) -> None:
        if not self._in_transaction:
            raise StorageError(
                "Mutation attempted outside a transaction",
                details={"table": self.schema.table},
            )

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"PRAGMA busy_timeout={int(self.config.busy_timeout_ms)}")
        if not self.in_memory:
            mode = self.config.journal_mode.upper()
            got = conn.execute(f"PRAGMA journal_mode={mode}").fetchone()[0]
            if got.upper() != mode:
                logger.warning("journal_mode_unexpected", wanted=mode, got=got, path=self.path)
        conn.execute(f"PRAGMA synchronous={self.config.synchronous.upper()}")
        conn.execute(f"PRAGMA cache_size=-{int(self.config.cache_kib)}")  # negative => KiB

    def _verify_layout(self, existing: List[tuple]) -> None:
        # PRAGMA table_info rows: (cid, name, type, notnull, dflt_value, pk)
        found = [(row[1], (row[2] or "").upper(), bool(row[3]), row[5]) for row in existing]
        expected = []
        for column in self.schema.columns:
            pk_position = (
                self.schema.primary_key.index(column.name) + 1 if column.primary_key else 0
            )
            expected.append(
                (column.name, SQLITE_TYPES[column.type], not column.nullable, pk_position)
            )
        if found != expected:
            raise SchemaError(
                f"Existing table '{self.schema.table}' does not match the declared schema",
                details={"path": self.path, "found": found, "expected": expected},
            )

    def _encode(self, value: Any) -> Any:
        if isinstance(value, bool):
            return int(value)
        return value

    def _decode(self, record: tuple) -> Row:
        row: Row = {}
        for column, value in zip(self.schema.columns, record):
            if column.type == ColumnType.BOOLEAN and value is not None:
                value = bool(value)
            row[column.name] = value
        return row
