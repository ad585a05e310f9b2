# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and tuning profiles.

These helpers are small, convenient wrappers around SyncConfig and
SyncConfig.with_updates(). They make it easy to:

- Build a configuration from environment variables
- Apply ready-made durability profiles
"""

from __future__ import annotations

import os

from snapsync.config import (
    JOURNAL_MODES,
    SYNCHRONOUS_LEVELS,
    HostType,
    SyncConfig,
    default_config_for,
)
from snapsync.errors import (
    explain_invalid_enum,
    explain_invalid_env_bool,
    explain_invalid_env_int,
)
from snapsync.exceptions import ConfigurationError

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _parse_choice(name: str, value: str | None, allowed: tuple[str, ...], default: str) -> str:
    if not value:
        return default
    upper = value.strip().upper()
    if upper not in allowed:
        raise ConfigurationError(explain_invalid_enum(name, value, allowed))
    return upper


def _parse_int(name: str, value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_env_int(name, value)) from exc
    if number < 0:
        raise ConfigurationError(explain_invalid_env_int(name, value))
    return number


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if not value:
        return default
    lower = value.strip().lower()
    if lower in _TRUE:
        return True
    if lower in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_env_bool(name, value))


def create_config_from_env(host_type: HostType = HostType.AGENT) -> SyncConfig:
    """
    Create a SyncConfig from environment variables.

    Unset variables fall back to default_config_for(host_type).

    Optional environment variables:
        - SNAPSYNC_JOURNAL_MODE: WAL | DELETE | TRUNCATE | PERSIST | MEMORY | OFF
        - SNAPSYNC_SYNCHRONOUS: OFF | NORMAL | FULL | EXTRA
        - SNAPSYNC_BUSY_TIMEOUT_MS: Non-negative integer
        - SNAPSYNC_CACHE_KIB: Page cache size in KiB
        - SNAPSYNC_STRICT_TYPES: 1/true disables type coercion
    """

    base = default_config_for(host_type)

    journal_mode = _parse_choice(
        "SNAPSYNC_JOURNAL_MODE", os.getenv("SNAPSYNC_JOURNAL_MODE"), JOURNAL_MODES, base.journal_mode
    )
    synchronous = _parse_choice(
        "SNAPSYNC_SYNCHRONOUS", os.getenv("SNAPSYNC_SYNCHRONOUS"), SYNCHRONOUS_LEVELS, base.synchronous
    )
    busy_timeout_ms = _parse_int(
        "SNAPSYNC_BUSY_TIMEOUT_MS", os.getenv("SNAPSYNC_BUSY_TIMEOUT_MS"), base.busy_timeout_ms
    )
    cache_kib = _parse_int("SNAPSYNC_CACHE_KIB", os.getenv("SNAPSYNC_CACHE_KIB"), base.cache_kib)
    strict = _parse_bool("SNAPSYNC_STRICT_TYPES", os.getenv("SNAPSYNC_STRICT_TYPES"), False)

    return SyncConfig(
        journal_mode=journal_mode,
        synchronous=synchronous,
        busy_timeout_ms=busy_timeout_ms,
        cache_kib=cache_kib,
        coerce_types=not strict,
    )


# ============================================================================
# Profiles
# ============================================================================

def durable_profile(config: SyncConfig) -> SyncConfig:
    """
    Apply a durability-first profile.

    - WAL journal with FULL synchronous commits
    - At least a 30 second busy timeout
    """

    return config.with_updates(
        journal_mode="WAL",
        synchronous="FULL",
        busy_timeout_ms=max(config.busy_timeout_ms, 30000),
    )


def fast_profile(config: SyncConfig) -> SyncConfig:
    """
    Apply a throughput-first profile for rebuildable tables.

    - In-memory journal, synchronous OFF
    - A crash may lose the last committed snapshot
    """

    return config.with_updates(
        journal_mode="MEMORY",
        synchronous="OFF",
    )
