# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Concurrency tests.

Different handles must proceed independently; calls on the same handle
must behave as if they ran one after another.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from snapsync.config import DbEngineType, HostType
from snapsync.differ import compute_diff
from snapsync.emitter import BatchResult

FILES_DDL = "files(path TEXT PRIMARY KEY, size INT, hash TEXT)"


def _snapshot(prefix: str, count: int, version: int):
    return [
        {"path": f"/{prefix}/{i:04d}", "size": i * version, "hash": f"h{version}"}
        for i in range(count)
    ]


# ============================================================================
# Independent handles
# ============================================================================

def test_distinct_handles_sync_in_parallel(registry, temp_dir: Path):
    """Each thread owns a handle; every result matches its own history only."""
    handles = [
        registry.initialize(
            HostType.AGENT, DbEngineType.SQLITE3, str(temp_dir / f"t{n}.db"), FILES_DDL
        )
        for n in range(4)
    ]
    barrier = threading.Barrier(len(handles))

    def work(n):
        coordinator = registry.lookup(handles[n]).coordinator
        barrier.wait()
        first = coordinator.update_snapshot_data(_snapshot(f"h{n}", 50, 1))
        second = coordinator.update_snapshot_data(_snapshot(f"h{n}", 50, 2))
        third = coordinator.update_snapshot_data(_snapshot(f"h{n}", 50, 2))
        return first.counts(), second.counts(), third.counts(), coordinator.select_rows()

    with ThreadPoolExecutor(max_workers=len(handles)) as pool:
        results = list(pool.map(work, range(len(handles))))

    for n, (first, second, third, rows) in enumerate(results):
        assert first == {"inserted": 50, "modified": 0, "deleted": 0}
        # size 0 * version stays 0 for the first row; only the hash changes there
        assert second == {"inserted": 0, "modified": 50, "deleted": 0}
        assert third == {"inserted": 0, "modified": 0, "deleted": 0}
        assert rows == _snapshot(f"h{n}", 50, 2)


def test_concurrent_initialize_and_release(registry):
    """Handles issued concurrently are unique and all resolve."""

    def create(n):
        return registry.initialize(
            HostType.MANAGER, DbEngineType.MEMORY, f"mem{n}", "t(id INT PRIMARY KEY, v TEXT)"
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        handles = list(pool.map(create, range(32)))

    assert len(set(handles)) == 32
    assert len(registry) == 32

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(registry.release, handles[:16]))

    assert len(registry) == 16
    assert sorted(registry.handles(), key=lambda h: h.index) == sorted(
        handles[16:], key=lambda h: h.index
    )


# ============================================================================
# Same handle
# ============================================================================

def test_same_handle_updates_are_serialized(registry, files_handle, files_schema):
    """
    Two threads alternate between snapshots A and B on one handle.

    Every result must be either empty (the other thread had not run in
    between) or exactly the diff from the other snapshot.
    """
    coordinator = registry.lookup(files_handle).coordinator
    snap_a = _snapshot("x", 40, 1)
    snap_b = _snapshot("x", 30, 3) + _snapshot("y", 10, 1)

    a_to_b = BatchResult(files_schema, compute_diff(files_schema, snap_a, snap_b).events).to_list()
    b_to_a = BatchResult(files_schema, compute_diff(files_schema, snap_b, snap_a).events).to_list()
    first_a = BatchResult(files_schema, compute_diff(files_schema, [], snap_a).events).to_list()
    first_b = BatchResult(files_schema, compute_diff(files_schema, [], snap_b).events).to_list()

    barrier = threading.Barrier(2)

    def submit(snapshot, rounds=25):
        barrier.wait()
        return [coordinator.update_snapshot_data(snapshot).to_list() for _ in range(rounds)]

    with ThreadPoolExecutor(max_workers=2) as pool:
        future_a = pool.submit(submit, snap_a)
        future_b = pool.submit(submit, snap_b)
        results_a = future_a.result()
        results_b = future_b.result()

    for result in results_a:
        assert result in ([], b_to_a, first_a)
    for result in results_b:
        assert result in ([], a_to_b, first_b)

    assert coordinator.select_rows() in (snap_a, snap_b)


def test_bulk_and_snapshot_calls_do_not_interleave(registry, files_handle):
    """A bulk insert racing a snapshot leaves one of the two serial outcomes."""
    coordinator = registry.lookup(files_handle).coordinator
    bulk_rows = _snapshot("bulk", 100, 1)
    snap_rows = _snapshot("snap", 20, 1)
    barrier = threading.Barrier(2)

    def bulk():
        barrier.wait()
        return coordinator.insert_bulk_data(bulk_rows)

    def snap():
        barrier.wait()
        return coordinator.update_snapshot_data(snap_rows).counts()

    with ThreadPoolExecutor(max_workers=2) as pool:
        bulk_future = pool.submit(bulk)
        snap_future = pool.submit(snap)
        assert bulk_future.result() == 100
        counts = snap_future.result()

    rows = coordinator.select_rows()
    if counts["deleted"] == 100:
        # bulk ran first, the full snapshot then replaced it
        assert rows == snap_rows
    else:
        assert counts == {"inserted": 20, "modified": 0, "deleted": 0}
        assert rows == bulk_rows + snap_rows
