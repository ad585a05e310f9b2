# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with snapsync Integration.

This example watches a directory: each call to /scan walks it, submits the
listing as a full snapshot of a files table, and returns what changed
since the previous scan.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    SNAPSYNC_WATCH_DIR: Directory to scan (default: current directory)
    SNAPSYNC_DB_PATH: Database file for the files table
    SNAPSYNC_ADMIN_API_KEY: API key for admin endpoints
    SNAPSYNC_JOURNAL_MODE / SNAPSYNC_SYNCHRONOUS / ...: Storage tuning
"""

import hashlib
import os
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, HTTPException

from snapsync import api
from snapsync.config import DbEngineType, HostType
from snapsync.env import create_config_from_env
from snapsync.integrations.fastapi import snapsync_lifespan

logger = structlog.get_logger()

FILES_DDL = "files(path TEXT PRIMARY KEY, size INTEGER, mtime INTEGER, sha256 TEXT)"

WATCH_DIR = Path(os.getenv("SNAPSYNC_WATCH_DIR", "."))
DB_PATH = os.getenv("SNAPSYNC_DB_PATH", "./snapsync_data/files.db")

state = {"handle": None}


def scan_directory(root: Path) -> list:
    """Observe every regular file under root."""
    rows = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        stat = path.stat()
        rows.append(
            {
                "path": str(path.relative_to(root)),
                "size": stat.st_size,
                "mtime": int(stat.st_mtime),
                "sha256": hashlib.sha256(path.read_bytes()).hexdigest(),
            }
        )
    return rows


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the files table, then hand over to the snapsync lifespan."""
    result = api.initialize(
        HostType.AGENT,
        DbEngineType.SQLITE3,
        DB_PATH,
        FILES_DDL,
        lambda message: logger.warning("snapsync_failure", message=message),
        config=create_config_from_env(HostType.AGENT),
    )
    if not result.ok:
        raise RuntimeError(f"Failed to open files table: {result.message}")
    state["handle"] = result.value

    async with snapsync_lifespan(app):
        yield


# Create FastAPI app
app = FastAPI(
    title="Directory watcher with snapsync",
    description="Example application reporting file changes between scans",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# Application Routes
# ============================================================================

@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Directory watcher with snapsync",
        "watching": str(WATCH_DIR.resolve()),
        "docs": "/docs",
        "snapsync_admin": "/admin/snapsync/health",
    }


@app.post("/scan")
def scan():
    """Scan the watched directory and report changes since the last scan."""
    result = api.update_with_snapshot(state["handle"], scan_directory(WATCH_DIR))
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.message)
    return {"changes": result.value}


@app.get("/files")
def files():
    """Files as of the last scan."""
    result = api.select_rows(state["handle"])
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.message)
    return result.value


# ============================================================================
# snapsync Admin Endpoints (registered by snapsync_lifespan)
# ============================================================================
#
# POST   /admin/snapsync/tables                  - Create a table
# GET    /admin/snapsync/tables                  - List live handles
# POST   /admin/snapsync/tables/{handle}/rows    - Bulk-load rows
# PUT    /admin/snapsync/tables/{handle}/snapshot?mode=full|partial - Submit snapshot
# GET    /admin/snapsync/tables/{handle}/rows    - Read committed rows
# DELETE /admin/snapsync/tables/{handle}         - Release a handle
# GET    /admin/snapsync/health                  - Health check
#
# All admin endpoints require: Authorization: Bearer <SNAPSYNC_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
