# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Differ tests.

Tests cover:
- Inserted / Modified / Deleted classification
- Minimal modified payloads
- Primary-key ordering
- Partial snapshots
- Replaying events onto the old snapshot
"""

import pytest

from snapsync.config import SnapshotMode
from snapsync.differ import (
    Deleted,
    Inserted,
    Modified,
    apply_changes,
    compute_diff,
    sort_key,
    values_equal,
)
from snapsync.exceptions import DuplicateKeyError, SchemaError
from snapsync.schema import parse_schema


def row(path, size=None, hash=None):
    return {"path": path, "size": size, "hash": hash}


# ============================================================================
# Classification
# ============================================================================

def test_empty_committed_reports_every_row_inserted(files_schema):
    plan = compute_diff(files_schema, [], [row("/b", 2, "h2"), row("/a", 1, "h1")])

    assert plan.events == [
        Inserted(key=("/a",), row=row("/a", 1, "h1")),
        Inserted(key=("/b",), row=row("/b", 2, "h2")),
    ]
    assert plan.deletes == []
    assert len(plan.upserts) == 2


def test_identical_snapshot_produces_nothing(files_schema):
    snapshot = [row("/a", 1, "h1"), row("/b", 2, "h2")]

    plan = compute_diff(files_schema, snapshot, list(snapshot))

    assert plan.events == []
    assert plan.upserts == []
    assert plan.deletes == []


def test_mixed_changes_in_key_order(files_schema):
    committed = [row("/a", 10, "h1"), row("/b", 20, "h2"), row("/d", 40, "h4")]
    incoming = [row("/c", 30, "h3"), row("/b", 25, "h2"), row("/a", 10, "h1")]

    plan = compute_diff(files_schema, committed, incoming)

    assert plan.events == [
        Modified(key=("/b",), changed={"size": 25}),
        Inserted(key=("/c",), row=row("/c", 30, "h3")),
        Deleted(key=("/d",)),
    ]
    assert plan.deletes == [("/d",)]
    assert [r["path"] for r in plan.upserts] == ["/b", "/c"]


def test_modified_carries_only_changed_columns(files_schema):
    plan = compute_diff(files_schema, [row("/a", 1, "h1")], [row("/a", 1, "h9")])

    (event,) = plan.events
    assert isinstance(event, Modified)
    assert event.changed == {"hash": "h9"}


def test_change_to_null_is_a_modification(files_schema):
    plan = compute_diff(files_schema, [row("/a", 1, "h1")], [row("/a", None, "h1")])

    assert plan.events == [Modified(key=("/a",), changed={"size": None})]


def test_empty_snapshot_deletes_everything(files_schema):
    plan = compute_diff(files_schema, [row("/a", 1), row("/b", 2)], [])

    assert plan.events == [Deleted(key=("/a",)), Deleted(key=("/b",))]


def test_duplicate_incoming_key_rejected(files_schema):
    with pytest.raises(DuplicateKeyError) as exc_info:
        compute_diff(files_schema, [], [row("/a", 1), row("/a", 2)])
    assert exc_info.value.details["key"] == {"path": "/a"}


def test_key_only_table_never_reports_modified():
    schema = parse_schema("ports(proto TEXT, port INT, PRIMARY KEY (proto, port))")
    committed = [{"proto": "tcp", "port": 22}, {"proto": "tcp", "port": 80}]
    incoming = [{"proto": "tcp", "port": 22}, {"proto": "udp", "port": 53}]

    plan = compute_diff(schema, committed, incoming)

    assert plan.events == [
        Deleted(key=("tcp", 80)),
        Inserted(key=("udp", 53), row={"proto": "udp", "port": 53}),
    ]


# ============================================================================
# Equality and ordering
# ============================================================================

def test_values_equal_is_type_strict():
    assert values_equal(1, 1)
    assert values_equal(None, None)
    assert not values_equal(1, 1.0)
    assert not values_equal(True, 1)
    assert not values_equal("1", 1)
    assert not values_equal(None, "")


def test_int_to_float_change_is_reported():
    schema = parse_schema("m(id INT PRIMARY KEY, v ANY)")

    plan = compute_diff(schema, [{"id": 1, "v": 1}], [{"id": 1, "v": 1.0}])

    assert plan.events == [Modified(key=(1,), changed={"v": 1.0})]


def test_sort_key_orders_numbers_before_text():
    keys = [("b",), (10,), ("a",), (2.5,), (-1,)]
    assert sorted(keys, key=sort_key) == [(-1,), (2.5,), (10,), ("a",), ("b",)]


def test_composite_keys_order_column_by_column():
    schema = parse_schema("pkg(name TEXT, version TEXT, size INT, PRIMARY KEY (name, version))")
    incoming = [
        {"name": "zlib", "version": "1.2", "size": 1},
        {"name": "bash", "version": "5.1", "size": 2},
        {"name": "bash", "version": "5.0", "size": 3},
    ]

    plan = compute_diff(schema, [], incoming)

    assert [event.key for event in plan.events] == [
        ("bash", "5.0"),
        ("bash", "5.1"),
        ("zlib", "1.2"),
    ]


# ============================================================================
# Partial snapshots
# ============================================================================

def test_partial_mode_never_deletes(files_schema):
    committed = [row("/a", 1, "h1"), row("/b", 2, "h2")]

    plan = compute_diff(files_schema, committed, [row("/b", 3, "h2")], SnapshotMode.PARTIAL)

    assert plan.events == [Modified(key=("/b",), changed={"size": 3})]
    assert plan.deletes == []


def test_partial_mode_merges_omitted_columns(files_schema):
    committed = [row("/a", 1, "h1")]

    plan = compute_diff(files_schema, committed, [{"path": "/a", "size": 7}], SnapshotMode.PARTIAL)

    assert plan.events == [Modified(key=("/a",), changed={"size": 7})]
    assert plan.upserts == [row("/a", 7, "h1")]


def test_partial_mode_fills_new_rows(files_schema):
    plan = compute_diff(files_schema, [], [{"path": "/n", "size": 4}], SnapshotMode.PARTIAL)

    assert plan.events == [Inserted(key=("/n",), row=row("/n", 4, None))]


def test_partial_mode_new_row_missing_required_column():
    schema = parse_schema("users(uid INT PRIMARY KEY, name TEXT NOT NULL, shell TEXT)")

    with pytest.raises(SchemaError):
        compute_diff(schema, [], [{"uid": 0, "shell": "/bin/sh"}], SnapshotMode.PARTIAL)


# ============================================================================
# Replay
# ============================================================================

def test_replaying_events_reproduces_new_snapshot(files_schema):
    committed = [row("/a", 1, "h1"), row("/b", 2, "h2"), row("/c", 3, "h3")]
    incoming = [row("/a", 1, "h1"), row("/b", 2, "changed"), row("/e", 5, "h5")]

    plan = compute_diff(files_schema, committed, incoming)

    assert apply_changes(files_schema, committed, plan.events) == sorted(
        incoming, key=lambda r: r["path"]
    )


def test_replay_after_partial_update(files_schema):
    committed = [row("/a", 1, "h1"), row("/b", 2, "h2")]
    incoming = [{"path": "/b", "hash": "x"}, {"path": "/c", "size": 3}]

    plan = compute_diff(files_schema, committed, incoming, SnapshotMode.PARTIAL)

    assert apply_changes(files_schema, committed, plan.events) == [
        row("/a", 1, "h1"),
        row("/b", 2, "x"),
        row("/c", 3, None),
    ]
