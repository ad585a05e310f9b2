# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI plugin and other framework integrations.
"""

from snapsync.integrations.fastapi import (
    register_snapsync_routes,
    snapsync_lifespan,
    verify_api_key,
)

__all__ = [
    "register_snapsync_routes",
    "snapsync_lifespan",
    "verify_api_key",
]
