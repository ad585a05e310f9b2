# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync - Snapshot synchronization and change reporting for host tables.

Persists the last observed state of a table (files, processes, packages,
...) and, given a fresh full observation, reports exactly which rows were
inserted, modified or deleted. Many independent tables can be synchronized
concurrently. Package name: snapsync.
"""

__version__ = "0.1.0"

# Boundary operations (user-facing API)
from snapsync.api import (
    Result,
    attach_log_sink,
    initialize,
    insert_bulk_data,
    release,
    select_rows,
    teardown,
    update_with_snapshot,
    update_with_snapshot_streaming,
)

# Configuration
from snapsync.config import DbEngineType, HostType, SnapshotMode, SyncConfig
from snapsync.env import create_config_from_env, durable_profile, fast_profile

# Errors
from snapsync.exceptions import SnapSyncError, StatusCode

# Core building blocks
from snapsync.differ import ChangeEvent, Deleted, Inserted, Modified, apply_changes, compute_diff
from snapsync.registry import Handle, HandleRegistry
from snapsync.schema import Schema, parse_schema

__all__ = [
    # Version
    "__version__",
    # Boundary operations
    "Result",
    "initialize",
    "attach_log_sink",
    "insert_bulk_data",
    "update_with_snapshot",
    "update_with_snapshot_streaming",
    "select_rows",
    "release",
    "teardown",
    # Configuration
    "DbEngineType",
    "HostType",
    "SnapshotMode",
    "SyncConfig",
    "create_config_from_env",
    "durable_profile",
    "fast_profile",
    # Errors
    "SnapSyncError",
    "StatusCode",
    # Core
    "ChangeEvent",
    "Inserted",
    "Modified",
    "Deleted",
    "apply_changes",
    "compute_diff",
    "Handle",
    "HandleRegistry",
    "Schema",
    "parse_schema",
]
