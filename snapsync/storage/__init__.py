# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage Engine Adapter - Transactional snapshot tables.
"""

from snapsync.config import DbEngineType, SyncConfig
from snapsync.exceptions import InvalidArgumentError
from snapsync.schema import Schema
from snapsync.storage.base import StorageEngine
from snapsync.storage.sqlite_engine import SQLiteStorageEngine, wrap_sqlite_error


def open_storage(
    engine_type: DbEngineType,
    path: str,
    schema: Schema,
    config: SyncConfig,
) -> StorageEngine:
    """
    Create and open the storage engine for a handle.

    Args:
        engine_type: Backend variant
        path: Database file path (a label only for the memory engine)
        schema: Table schema
        config: Storage tuning

    Returns:
        An open engine with its table created

    Raises:
        InvalidArgumentError: If the engine type is not supported
        StorageError: If the backend cannot be opened
        SchemaError: If an existing table does not match the schema
    """
    if engine_type == DbEngineType.SQLITE3:
        engine = SQLiteStorageEngine(path, schema, config)
    elif engine_type == DbEngineType.MEMORY:
        engine = SQLiteStorageEngine(path, schema, config, in_memory=True)
    else:
        raise InvalidArgumentError(f"Unsupported engine type: {engine_type}")
    engine.open()
    return engine


__all__ = [
    "StorageEngine",
    "SQLiteStorageEngine",
    "open_storage",
    "wrap_sqlite_error",
]
