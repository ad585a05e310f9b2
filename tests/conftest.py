# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for snapsync tests.

Provides temporary storage, schemas, registries and ready-made handles.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

# Set test environment variables
os.environ["SNAPSYNC_ADMIN_API_KEY"] = "test-api-key-12345"

FILES_DDL = "files(path TEXT PRIMARY KEY, size INT, hash TEXT)"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def files_schema():
    """The files(path, size, hash) schema."""
    from snapsync.schema import parse_schema

    return parse_schema(FILES_DDL)


@pytest.fixture
def registry():
    """A private registry, torn down after the test."""
    from snapsync.registry import HandleRegistry

    reg = HandleRegistry()
    yield reg
    reg.teardown()


@pytest.fixture
def files_handle(registry, temp_dir: Path):
    """A handle on a file-backed files table in a private registry."""
    from snapsync.config import DbEngineType, HostType

    return registry.initialize(
        HostType.AGENT,
        DbEngineType.SQLITE3,
        str(temp_dir / "files.db"),
        FILES_DDL,
    )


@pytest.fixture
def files_instance(registry, files_handle):
    """The Instance behind files_handle."""
    return registry.lookup(files_handle)


@pytest.fixture
def log_messages() -> List[str]:
    """A list that doubles as a log sink via .append."""
    return []


@pytest.fixture(autouse=True)
def clean_default_registry():
    """Tear down the process-wide registry after each test."""
    yield
    from snapsync import api

    api.teardown()
