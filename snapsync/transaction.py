# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Transaction Coordinator - Atomic load and diff protocols.

Every mutating call on a handle takes that handle's lock for the whole
transaction, so a diff never observes a table another in-flight call on
the same handle is halfway through changing. Different handles never
share a lock.

Events are only handed back after a successful commit; a failed call
leaves the last committed snapshot in place and produces no events.
"""

import threading
import time
from typing import Any, Dict, List, Sequence

import structlog
from ulid import ULID

from snapsync.config import SnapshotMode, SyncConfig
from snapsync.differ import DiffPlan, compute_diff
from snapsync.emitter import BatchResult, ChangeStream
from snapsync.schema import Row, Schema, validate_rows
from snapsync.storage import StorageEngine

logger = structlog.get_logger()


class TransactionCoordinator:
    """Serializes and runs the mutating operations of one handle."""

    def __init__(self, schema: Schema, engine: StorageEngine, config: SyncConfig):
        self.schema = schema
        self.engine = engine
        self.config = config
        self._lock = threading.Lock()

    def insert_bulk_data(self, rows: Sequence[Any]) -> int:
        """
        Load rows without diffing.

        Every row is validated first; then all rows are upserted in one
        transaction. A primary key repeated in the batch keeps its last row.

        Args:
            rows: Candidate rows

        Returns:
            Number of rows written

        Raises:
            SchemaError: If any row is invalid (nothing is written)
            StorageError: If the backend fails (the batch is rolled back)
        """
        operation_id = str(ULID())
        started = time.monotonic()

        with self._lock:
            validated = validate_rows(
                self.schema, rows, coerce=self.config.coerce_types, fill_missing=True
            )
            try:
                with self.engine.transaction():
                    for row in validated:
                        self.engine.upsert(row)
            except Exception as e:
                self._log_rollback(operation_id, "insert_bulk_data", e)
                raise

        logger.info(
            "bulk_insert_committed",
            operation_id=operation_id,
            table=self.schema.table,
            rows=len(validated),
            duration=time.monotonic() - started,
        )
        return len(validated)

    def update_snapshot_data(
        self,
        rows: Sequence[Any],
        mode: SnapshotMode = SnapshotMode.FULL,
    ) -> BatchResult:
        """
        Replace the stored snapshot and return what changed.

        Args:
            rows: The new snapshot (the whole table in FULL mode)
            mode: FULL or PARTIAL

        Returns:
            BatchResult with events in primary-key order

        Raises:
            SchemaError: If any row is invalid
            DuplicateKeyError: If two rows share a primary key
            StorageError: If the backend fails; nothing is changed
        """
        plan = self._apply_snapshot(rows, mode)
        return BatchResult(schema=self.schema, events=plan.events)

    def update_snapshot_stream(
        self,
        rows: Sequence[Any],
        mode: SnapshotMode = SnapshotMode.FULL,
    ) -> ChangeStream:
        """Same as update_snapshot_data, returning a pull-based stream."""
        plan = self._apply_snapshot(rows, mode)
        return ChangeStream(self.schema, plan.events)

    def select_rows(self) -> List[Row]:
        """Current committed snapshot in primary-key order."""
        with self._lock:
            return self.engine.scan_all()

    def describe(self) -> Dict[str, Any]:
        """Storage status (pragmas, row count) read between transactions."""
        with self._lock:
            return self.engine.describe()

    def _apply_snapshot(self, rows: Sequence[Any], mode: SnapshotMode) -> DiffPlan:
        operation_id = str(ULID())
        started = time.monotonic()

        with self._lock:
            validated = validate_rows(
                self.schema,
                rows,
                coerce=self.config.coerce_types,
                fill_missing=mode == SnapshotMode.FULL,
            )
            try:
                with self.engine.transaction():
                    plan = compute_diff(self.schema, self.engine.scan_all(), validated, mode)
                    for row in plan.upserts:
                        self.engine.upsert(row)
                    for key in plan.deletes:
                        self.engine.delete(key)
            except Exception as e:
                self._log_rollback(operation_id, "update_snapshot_data", e)
                raise

        counts = BatchResult(self.schema, plan.events).counts()
        logger.info(
            "snapshot_update_committed",
            operation_id=operation_id,
            table=self.schema.table,
            mode=mode.value,
            rows=len(validated),
            duration=time.monotonic() - started,
            **counts,
        )
        return plan

    def _log_rollback(self, operation_id: str, operation: str, error: Exception) -> None:
        logger.warning(
            "transaction_rolled_back",
            operation_id=operation_id,
            operation=operation,
            table=self.schema.table,
            error=str(error),
        )
