# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration, environment and profile tests.
"""

from dataclasses import FrozenInstanceError

import pytest

from snapsync.config import HostType, SyncConfig, default_config_for
from snapsync.env import create_config_from_env, durable_profile, fast_profile
from snapsync.exceptions import ConfigurationError, StatusCode

ENV_VARS = (
    "SNAPSYNC_JOURNAL_MODE",
    "SNAPSYNC_SYNCHRONOUS",
    "SNAPSYNC_BUSY_TIMEOUT_MS",
    "SNAPSYNC_CACHE_KIB",
    "SNAPSYNC_STRICT_TYPES",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ============================================================================
# SyncConfig
# ============================================================================

def test_defaults_are_valid():
    config = SyncConfig()

    assert config.journal_mode == "WAL"
    assert config.synchronous == "NORMAL"
    assert config.busy_timeout_ms == 30000
    assert config.coerce_types is True


def test_validation_collects_every_error():
    """Test configuration validation."""
    with pytest.raises(ConfigurationError) as exc_info:
        SyncConfig(journal_mode="BOGUS", synchronous="SOMETIMES", busy_timeout_ms=-1, cache_kib=1)

    errors = exc_info.value.details["errors"]
    assert len(errors) == 4
    assert any("journal_mode" in e for e in errors)
    assert any("cache_kib" in e for e in errors)
    assert exc_info.value.status == StatusCode.INVALID_ARGUMENT


def test_with_updates_returns_new_validated_config():
    base = SyncConfig()

    updated = base.with_updates(synchronous="FULL")

    assert updated.synchronous == "FULL"
    assert base.synchronous == "NORMAL"
    with pytest.raises(ConfigurationError):
        base.with_updates(busy_timeout_ms=-5)


def test_config_is_frozen():
    config = SyncConfig()
    with pytest.raises(FrozenInstanceError):
        config.journal_mode = "DELETE"


def test_host_type_selects_default_tuning():
    manager = default_config_for(HostType.MANAGER)
    agent = default_config_for(HostType.AGENT)

    assert manager.synchronous == "FULL"
    assert agent.synchronous == "NORMAL"
    assert manager.cache_kib > agent.cache_kib


# ============================================================================
# Environment
# ============================================================================

def test_env_defaults_follow_host_type(clean_env):
    assert create_config_from_env(HostType.MANAGER) == default_config_for(HostType.MANAGER)
    assert create_config_from_env() == default_config_for(HostType.AGENT)


def test_env_overrides(clean_env):
    clean_env.setenv("SNAPSYNC_JOURNAL_MODE", "delete")
    clean_env.setenv("SNAPSYNC_SYNCHRONOUS", "extra")
    clean_env.setenv("SNAPSYNC_BUSY_TIMEOUT_MS", "500")
    clean_env.setenv("SNAPSYNC_CACHE_KIB", "2048")
    clean_env.setenv("SNAPSYNC_STRICT_TYPES", "yes")

    config = create_config_from_env()

    assert config.journal_mode == "DELETE"
    assert config.synchronous == "EXTRA"
    assert config.busy_timeout_ms == 500
    assert config.cache_kib == 2048
    assert config.coerce_types is False


@pytest.mark.parametrize(
    "name, value",
    [
        ("SNAPSYNC_JOURNAL_MODE", "fast"),
        ("SNAPSYNC_SYNCHRONOUS", "maybe"),
        ("SNAPSYNC_BUSY_TIMEOUT_MS", "soon"),
        ("SNAPSYNC_BUSY_TIMEOUT_MS", "-1"),
        ("SNAPSYNC_CACHE_KIB", "1"),
        ("SNAPSYNC_STRICT_TYPES", "perhaps"),
    ],
)
def test_env_invalid_values_rejected(clean_env, name, value):
    clean_env.setenv(name, value)

    with pytest.raises(ConfigurationError) as exc_info:
        create_config_from_env()
    if name != "SNAPSYNC_CACHE_KIB":
        assert name in str(exc_info.value)


# ============================================================================
# Profiles
# ============================================================================

def test_durable_profile():
    config = durable_profile(SyncConfig(journal_mode="DELETE", busy_timeout_ms=100))

    assert config.journal_mode == "WAL"
    assert config.synchronous == "FULL"
    assert config.busy_timeout_ms == 30000


def test_durable_profile_keeps_longer_timeout():
    assert durable_profile(SyncConfig(busy_timeout_ms=90000)).busy_timeout_ms == 90000


def test_fast_profile():
    config = fast_profile(SyncConfig(cache_kib=4096))

    assert config.journal_mode == "MEMORY"
    assert config.synchronous == "OFF"
    assert config.cache_kib == 4096
