# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Configuration - Enumerations and immutable storage settings.

All configuration is frozen (immutable) after creation so one config can
be shared between handles and threads.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List


class HostType(str, Enum):
    """Kind of host the synchronized tables run on."""

    MANAGER = "manager"
    AGENT = "agent"


class DbEngineType(str, Enum):
    """Storage backend variant."""

    SQLITE3 = "sqlite3"  # File-backed SQLite database at storage_path
    MEMORY = "memory"  # Private in-process SQLite database


class SnapshotMode(str, Enum):
    """How an update_with_snapshot input relates to the stored table."""

    FULL = "full"  # Input is the whole table; absent rows are deleted
    PARTIAL = "partial"  # Input is a subset; absent rows are left alone


JOURNAL_MODES = ("WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF")
SYNCHRONOUS_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")
MIN_CACHE_KIB = 16


@dataclass(frozen=True)
class SyncConfig:
    """
    Immutable storage and validation settings for a handle.

    Fixed at initialize time; a handle never observes a config change.
    """

    # SQLite journal mode (WAL keeps readers off the writer's back)
    journal_mode: str = "WAL"

    # SQLite synchronous level
    synchronous: str = "NORMAL"

    # How long SQLite waits on a locked database before failing
    busy_timeout_ms: int = 30000

    # Page cache size in KiB
    cache_kib: int = 8 * 1024

    # Coerce unambiguous type mismatches (False = strict)
    coerce_types: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if self.journal_mode.upper() not in JOURNAL_MODES:
            errors.append(
                f"journal_mode must be one of {', '.join(JOURNAL_MODES)}, got {self.journal_mode}"
            )

        if self.synchronous.upper() not in SYNCHRONOUS_LEVELS:
            errors.append(
                f"synchronous must be one of {', '.join(SYNCHRONOUS_LEVELS)}, got {self.synchronous}"
            )

        if self.busy_timeout_ms < 0:
            errors.append(f"busy_timeout_ms must be >= 0, got {self.busy_timeout_ms}")

        if self.cache_kib < MIN_CACHE_KIB:
            errors.append(f"cache_kib must be >= {MIN_CACHE_KIB}, got {self.cache_kib}")

        # Raise all errors at once
        if errors:
            from snapsync.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "SyncConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return SyncConfig(**current)


def default_config_for(host_type: HostType) -> SyncConfig:
    """
    Default storage tuning for a host type.

    Agents favour a small footprint; managers favour durability.
    """
    if host_type == HostType.MANAGER:
        return SyncConfig(synchronous="FULL", cache_kib=64 * 1024)
    return SyncConfig(synchronous="NORMAL", cache_kib=8 * 1024)
