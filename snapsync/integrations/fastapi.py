# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync FastAPI Integration - Expose synchronized tables over HTTP.

This module provides:
- Protected endpoints for creating tables, loading rows and submitting snapshots
- Lifespan management (teardown on shutdown)
- Health check

Endpoints are plain (sync) functions: the engine blocks on storage I/O,
so FastAPI runs them in its worker threadpool.
"""

import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Dict, List

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from snapsync import api
from snapsync.config import DbEngineType, HostType, SnapshotMode
from snapsync.exceptions import InvalidHandleError, SnapSyncError, StatusCode
from snapsync.registry import default_registry

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)

_HTTP_STATUS = {
    StatusCode.INVALID_ARGUMENT: 422,
    StatusCode.PARSE_ERROR: 422,
    StatusCode.SCHEMA_ERROR: 422,
    StatusCode.DUPLICATE_KEY: 422,
    StatusCode.INVALID_HANDLE: 404,
    StatusCode.STORAGE_ERROR: 503,
    StatusCode.UNKNOWN_ERROR: 500,
}


class CreateTableRequest(BaseModel):
    """Body of POST /tables."""

    storage_path: str = Field(min_length=1)
    schema_ddl: str = Field(min_length=1)
    host_type: HostType = HostType.AGENT
    engine_type: DbEngineType = DbEngineType.SQLITE3


def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the SNAPSYNC_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("SNAPSYNC_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="SNAPSYNC_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def _unwrap(result: api.Result) -> Any:
    """Return the result value or raise the matching HTTPException."""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=_HTTP_STATUS.get(StatusCode(result.status), 500),
        detail={"status": result.status, "message": result.message},
    )


def register_snapsync_routes(app: FastAPI, prefix: str = "/admin/snapsync") -> None:
    """
    Register snapsync endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        prefix: URL prefix for endpoints (default: /admin/snapsync)
    """

    @app.post(f"{prefix}/tables", status_code=201, dependencies=[Depends(verify_api_key)])
    def create_table(request: CreateTableRequest) -> dict:
        """Create a synchronized table and return its handle."""
        handle = _unwrap(
            api.initialize(
                request.host_type,
                request.engine_type,
                request.storage_path,
                request.schema_ddl,
            )
        )
        return {"handle": str(handle)}

    @app.get(f"{prefix}/tables", dependencies=[Depends(verify_api_key)])
    def list_tables() -> list:
        """List live handles and the table behind each."""
        tables = []
        for handle in default_registry.handles():
            try:
                instance = default_registry.lookup(handle)
            except InvalidHandleError:
                continue  # released between listing and lookup
            tables.append(
                {
                    "handle": str(handle),
                    "table": instance.schema.table,
                    "host_type": instance.host_type.value,
                    "engine_type": instance.engine_type.value,
                }
            )
        return tables

    @app.post(f"{prefix}/tables/{{handle}}/rows", dependencies=[Depends(verify_api_key)])
    def load_rows(handle: str, rows: List[Dict[str, Any]]) -> dict:
        """Bulk-load rows without change reporting."""
        return {"written": _unwrap(api.insert_bulk_data(handle, rows))}

    @app.put(f"{prefix}/tables/{{handle}}/snapshot", dependencies=[Depends(verify_api_key)])
    def submit_snapshot(
        handle: str,
        rows: List[Dict[str, Any]],
        mode: SnapshotMode = SnapshotMode.FULL,
    ) -> dict:
        """
        Replace the table with a snapshot and return the changes.

        Args:
            handle: Table handle
            rows: The new snapshot
            mode: full (absent rows deleted) or partial (absent rows kept)
        """
        changes = _unwrap(api.update_with_snapshot(handle, rows, mode=mode))
        return {"changes": changes}

    @app.get(f"{prefix}/tables/{{handle}}/rows", dependencies=[Depends(verify_api_key)])
    def read_rows(handle: str) -> list:
        """Return the committed snapshot."""
        return _unwrap(api.select_rows(handle))

    @app.delete(f"{prefix}/tables/{{handle}}", dependencies=[Depends(verify_api_key)])
    def release_table(handle: str) -> dict:
        """Release a handle and close its storage."""
        _unwrap(api.release(handle))
        return {"released": handle}

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    def health_check() -> dict:
        """Health check endpoint with per-table storage status."""
        tables = []
        status = "healthy"
        for handle in default_registry.handles():
            try:
                instance = default_registry.lookup(handle)
            except InvalidHandleError:
                continue  # released between listing and lookup
            try:
                storage = instance.coordinator.describe()
            except SnapSyncError as e:
                logger.warning("health_check_storage_failed", handle=str(handle), error=str(e))
                status = "degraded"
                storage = {"error": e.message}
            tables.append({"handle": str(handle), **storage})

        return {
            "status": status,
            "handles": len(tables),
            "tables": tables,
            "timestamp": datetime.now(UTC).isoformat(),
        }


@asynccontextmanager
async def snapsync_lifespan(app: FastAPI, prefix: str = "/admin/snapsync"):
    """
    Lifespan context manager for FastAPI.

    Registers the routes on startup and tears every handle down on
    shutdown:

        app = FastAPI(lifespan=lambda app: snapsync_lifespan(app))

    Args:
        app: FastAPI application
        prefix: URL prefix for endpoints
    """
    logger.info("snapsync_lifespan_starting")
    register_snapsync_routes(app, prefix)

    try:
        yield
    finally:
        logger.info("snapsync_lifespan_stopping")
        api.teardown()
        logger.info("snapsync_lifespan_stopped")
