# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync API - The external boundary.

Every function here takes JSON-shaped input, returns a Result carrying a
status code (0 on success, a negative StatusCode otherwise), a message and
a value, and never raises. Failure messages are also forwarded to the
handle's log sink when one is attached.

Typical use:

    result = initialize(HostType.AGENT, DbEngineType.SQLITE3, "/var/lib/x/files.db",
                        "files(path TEXT PRIMARY KEY, size INT, hash TEXT)")
    handle = result.value
    changes = update_with_snapshot(handle, '[{"path": "/a", "size": 10, "hash": "h1"}]')
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

import structlog

from snapsync.config import DbEngineType, HostType, SnapshotMode, SyncConfig
from snapsync.emitter import ChangeSink
from snapsync.exceptions import (
    InvalidArgumentError,
    ParseError,
    SnapSyncError,
    StatusCode,
    UnknownError,
)
from snapsync.registry import Handle, Instance, LogSink, coerce_enum, default_registry
from snapsync.schema import Row

logger = structlog.get_logger()

T = TypeVar("T")
HandleLike = Union[Handle, str]
Payload = Union[str, bytes, bytearray, List[Any]]


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a boundary call."""

    status: int
    message: Optional[str] = None
    value: Optional[T] = None

    @property
    def ok(self) -> bool:
        return self.status == StatusCode.OK


def format_error(error: SnapSyncError) -> str:
    """Log-sink wording: parse errors carry the parse code, the rest the status."""
    if isinstance(error, ParseError):
        return f"json error, id: {error.parse_code}. {error.message}"
    return f"DB error, id: {int(error.status)}. {error.message}"


def decode_rows(payload: Optional[Payload]) -> List[Any]:
    """
    Decode a wire payload into a list of row objects.

    Raises:
        InvalidArgumentError: If the payload is missing
        ParseError: If it is not JSON (101) or not an array of objects (302)
    """
    if payload is None:
        raise InvalidArgumentError("Invalid handle or json: rows payload is missing")

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Payload is not UTF-8: {e}", ParseError.SYNTAX) from e

    if isinstance(payload, str):
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Malformed JSON: {e.msg}",
                ParseError.SYNTAX,
                details={"line": e.lineno, "column": e.colno},
            ) from e
    else:
        decoded = payload

    if not isinstance(decoded, list):
        raise ParseError(
            f"Rows payload must be a JSON array, got {type(decoded).__name__}",
            ParseError.WRONG_TYPE,
        )
    for index, row in enumerate(decoded):
        if not isinstance(row, dict):
            raise ParseError(
                f"Row {index} must be a JSON object, got {type(row).__name__}",
                ParseError.WRONG_TYPE,
                details={"row_index": index},
            )
    return decoded


def _as_handle(handle: Optional[HandleLike]) -> Handle:
    if handle is None:
        raise InvalidArgumentError("Invalid handle or json: handle is missing")
    if isinstance(handle, str):
        return Handle.parse(handle)
    return handle


def _resolve(handle: Optional[HandleLike]) -> Instance:
    return default_registry.lookup(_as_handle(handle))


def _fail(
    operation: str,
    error: SnapSyncError,
    instance: Optional[Instance] = None,
    log_sink: Optional[LogSink] = None,
) -> Result:
    message = format_error(error)
    logger.warning(
        "boundary_call_failed",
        operation=operation,
        status=int(error.status),
        error=str(error),
    )
    if instance is not None:
        instance.log(message)
    elif log_sink is not None:
        try:
            log_sink(message)
        except Exception as e:
            logger.warning("log_sink_failed", operation=operation, error=str(e))
    return Result(status=int(error.status), message=message)


def _call(operation: str, handle: Optional[HandleLike], body: Callable[[Instance], T]) -> Result[T]:
    instance = None
    try:
        instance = _resolve(handle)
        return Result(status=StatusCode.OK, value=body(instance))
    except SnapSyncError as e:
        return _fail(operation, e, instance)
    except Exception as e:
        return _fail(operation, UnknownError(f"Unrecognized error: {e}"), instance)


# ============================================================================
# Boundary operations
# ============================================================================

def initialize(
    host_type: Union[HostType, str],
    db_engine_type: Union[DbEngineType, str],
    storage_path: Optional[str],
    schema_ddl: Optional[str],
    log_sink: Optional[LogSink] = None,
    *,
    config: Optional[SyncConfig] = None,
) -> Result[Handle]:
    """
    Create a synchronized table.

    On failure value is None and the message also goes to log_sink.
    """
    try:
        handle = default_registry.initialize(
            host_type,
            db_engine_type,
            storage_path,
            schema_ddl,
            config=config,
            log_sink=log_sink,
        )
        return Result(status=StatusCode.OK, value=handle)
    except SnapSyncError as e:
        return _fail("initialize", e, log_sink=log_sink)
    except Exception as e:
        return _fail("initialize", UnknownError(f"Unrecognized error: {e}"), log_sink=log_sink)


def attach_log_sink(handle: Optional[HandleLike], sink: Optional[LogSink]) -> Result[None]:
    """Attach, replace or (with None) remove a handle's log sink."""

    def body(instance: Instance) -> None:
        instance.log_sink = sink

    return _call("attach_log_sink", handle, body)


def insert_bulk_data(handle: Optional[HandleLike], rows_json: Optional[Payload]) -> Result[int]:
    """Load rows without producing change events; value is the row count."""

    def body(instance: Instance) -> int:
        return instance.coordinator.insert_bulk_data(decode_rows(rows_json))

    return _call("insert_bulk_data", handle, body)


def update_with_snapshot(
    handle: Optional[HandleLike],
    rows_json: Optional[Payload],
    *,
    mode: Union[SnapshotMode, str] = SnapshotMode.FULL,
) -> Result[List[dict]]:
    """Apply a snapshot; value is the ordered list of change objects."""

    def body(instance: Instance) -> List[dict]:
        snapshot_mode = coerce_enum(SnapshotMode, mode, "mode")
        batch = instance.coordinator.update_snapshot_data(decode_rows(rows_json), snapshot_mode)
        return batch.to_list()

    return _call("update_with_snapshot", handle, body)


def update_with_snapshot_streaming(
    handle: Optional[HandleLike],
    rows_json: Optional[Payload],
    sink: Optional[ChangeSink],
    *,
    mode: Union[SnapshotMode, str] = SnapshotMode.FULL,
) -> Result[int]:
    """
    Apply a snapshot and push each change's JSON to sink, in key order.

    value is the number of events delivered. The sink runs after commit;
    if it raises, the snapshot stays applied and the call reports
    UNKNOWN_ERROR with the number of events delivered before the failure.
    """

    def body(instance: Instance) -> int:
        if sink is None:
            raise InvalidArgumentError("Invalid input parameters: sink is missing")
        snapshot_mode = coerce_enum(SnapshotMode, mode, "mode")
        stream = instance.coordinator.update_snapshot_stream(decode_rows(rows_json), snapshot_mode)
        total = len(stream)
        try:
            return stream.drain(sink)
        except Exception as e:
            delivered = total - stream.remaining - 1
            raise UnknownError(
                f"Change sink failed after {delivered} of {total} events: {e}",
                details={"delivered": delivered, "total": total},
            ) from e

    return _call("update_with_snapshot_streaming", handle, body)


def select_rows(handle: Optional[HandleLike]) -> Result[List[Row]]:
    """Read the committed snapshot, in primary-key order."""

    def body(instance: Instance) -> List[Row]:
        return instance.coordinator.select_rows()

    return _call("select_rows", handle, body)


def release(handle: Optional[HandleLike]) -> Result[None]:
    """Close one handle; it is invalid afterwards."""

    def body(instance: Instance) -> None:
        default_registry.release(_as_handle(handle))

    return _call("release", handle, body)


def teardown() -> None:
    """Release every handle and close every storage connection. Idempotent."""
    default_registry.teardown()
