# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage engine protocol.

The transaction coordinator only talks to this interface, so another
transactional store can be plugged in without touching the diff logic.
"""

from typing import ContextManager, Dict, List, Optional, Protocol

from snapsync.schema import Key, Row


class StorageEngine(Protocol):
    """A transactional table store keyed by primary key."""

    def open(self) -> None:
        """Open the connection and create the table if it is absent."""
        ...

    def close(self) -> None:
        ...

    def create_table_if_absent(self) -> None:
        ...

    def begin(self) -> None:
        ...

    def commit(self) -> None:
        """Commit everything since begin(); on failure roll all of it back."""
        ...

    def rollback(self) -> None:
        ...

    def transaction(self) -> ContextManager["StorageEngine"]:
        ...

    def upsert(self, row: Row) -> None:
        """Insert or replace a full row; requires an open transaction."""
        ...

    def delete(self, key: Key) -> None:
        """Delete a row by primary key; requires an open transaction."""
        ...

    def get(self, key: Key) -> Optional[Row]:
        ...

    def scan_all(self) -> List[Row]:
        """Every stored row, ordered by primary key ascending."""
        ...

    def count(self) -> int:
        ...

    def describe(self) -> Dict[str, object]:
        ...
