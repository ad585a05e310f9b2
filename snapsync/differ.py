# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Differ - Change events between two snapshots.

The differ walks the previously committed rows and the new input side by
side in primary-key order and produces:

    key only in new input         -> Inserted(key, row)
    key in both, values differ    -> Modified(key, changed columns only)
    key in both, values equal     -> nothing
    key only in committed rows    -> Deleted(key)   (full snapshots only)

Along with the events it returns the write plan (rows to upsert, keys to
delete) that turns the committed table into the new input. Both come from
the same pass so they can never disagree.

Keys are ordered the way SQLite orders mixed values: NULL, then numbers
(int and float compared numerically), then text by code point.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Sequence, Tuple, Union

from snapsync.config import SnapshotMode
from snapsync.errors import explain_duplicate_key
from snapsync.exceptions import DuplicateKeyError, SchemaError
from snapsync.schema import Key, Row, Schema


class ChangeType(str, Enum):
    """Kind of row change."""

    INSERTED = "inserted"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class Inserted:
    """A row that did not exist before."""

    type: ClassVar[ChangeType] = ChangeType.INSERTED
    key: Key
    row: Row


@dataclass(frozen=True)
class Modified:
    """An existing row with at least one changed non-key column."""

    type: ClassVar[ChangeType] = ChangeType.MODIFIED
    key: Key
    changed: Dict[str, Any]


@dataclass(frozen=True)
class Deleted:
    """A row that is gone."""

    type: ClassVar[ChangeType] = ChangeType.DELETED
    key: Key


ChangeEvent = Union[Inserted, Modified, Deleted]


@dataclass
class DiffPlan:
    """Events plus the writes that produce the new snapshot."""

    events: List[ChangeEvent] = field(default_factory=list)
    upserts: List[Row] = field(default_factory=list)
    deletes: List[Key] = field(default_factory=list)


def _rank(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, value)


def sort_key(key: Key) -> Tuple[Tuple[int, Any], ...]:
    """Total order over primary-key tuples matching SQLite's ORDER BY."""
    return tuple(_rank(v) for v in key)


def values_equal(old: Any, new: Any) -> bool:
    """Type-strict equality: 1, 1.0 and True are three different stored values."""
    return type(old) is type(new) and old == new


def index_rows(schema: Schema, rows: Iterable[Row]) -> Dict[Key, Row]:
    """
    Index validated rows by primary key.

    Raises:
        DuplicateKeyError: If two rows share a primary key
    """
    index: Dict[Key, Row] = {}
    for row in rows:
        key = schema.key_of(row)
        if key in index:
            key_dict = schema.key_dict(key)
            raise DuplicateKeyError(
                explain_duplicate_key(schema.table, key_dict),
                details={"key": key_dict},
            )
        index[key] = row
    return index


def _complete_new_row(schema: Schema, row: Row) -> Row:
    complete: Row = {}
    for column in schema.columns:
        value = row.get(column.name)
        if value is None and not column.nullable:
            raise SchemaError(
                f"New row for table '{schema.table}' is missing required column '{column.name}'",
                details={"column": column.name, "key": schema.key_dict(schema.key_of(row))},
            )
        complete[column.name] = value
    return complete


def compute_diff(
    schema: Schema,
    committed: Iterable[Row],
    incoming: Sequence[Row],
    mode: SnapshotMode = SnapshotMode.FULL,
) -> DiffPlan:
    """
    Compute change events and the write plan between two snapshots.

    Args:
        schema: Table schema
        committed: Rows currently persisted (any order)
        incoming: Validated new rows; in PARTIAL mode rows may omit columns
        mode: FULL treats absent keys as deleted, PARTIAL leaves them alone

    Returns:
        DiffPlan with events in primary-key order

    Raises:
        DuplicateKeyError: If the incoming rows repeat a primary key
        SchemaError: If a new row lacks a NOT NULL column (PARTIAL mode)
    """
    new_index = index_rows(schema, incoming)

    old_side = sorted(
        ((sort_key(schema.key_of(row)), schema.key_of(row), row) for row in committed),
        key=lambda item: item[0],
    )
    new_side = sorted(
        ((sort_key(key), key, row) for key, row in new_index.items()),
        key=lambda item: item[0],
    )

    value_columns = [c.name for c in schema.value_columns]
    plan = DiffPlan()
    i = j = 0
    while i < len(old_side) or j < len(new_side):
        if j >= len(new_side) or (i < len(old_side) and old_side[i][0] < new_side[j][0]):
            _, key, _ = old_side[i]
            i += 1
            if mode == SnapshotMode.FULL:
                plan.events.append(Deleted(key=key))
                plan.deletes.append(key)
            continue

        if i >= len(old_side) or new_side[j][0] < old_side[i][0]:
            _, key, row = new_side[j]
            j += 1
            complete = _complete_new_row(schema, row)
            plan.events.append(Inserted(key=key, row=complete))
            plan.upserts.append(complete)
            continue

        _, key, old_row = old_side[i]
        _, _, new_row = new_side[j]
        i += 1
        j += 1
        merged = {**old_row, **new_row}
        changed = {
            name: merged[name]
            for name in value_columns
            if not values_equal(old_row.get(name), merged.get(name))
        }
        if changed:
            plan.events.append(Modified(key=key, changed=changed))
            plan.upserts.append(merged)

    return plan


def apply_changes(schema: Schema, rows: Iterable[Row], events: Iterable[ChangeEvent]) -> List[Row]:
    """
    Replay change events onto a copy of a snapshot.

    Consumers that mirror a table can keep it current from the emitted
    events alone. Returns the resulting rows in primary-key order.
    """
    table = {schema.key_of(row): dict(row) for row in rows}
    for event in events:
        if isinstance(event, Inserted):
            table[event.key] = dict(event.row)
        elif isinstance(event, Modified):
            table[event.key].update(event.changed)
        else:
            table.pop(event.key, None)
    return [table[key] for key in sorted(table, key=sort_key)]
