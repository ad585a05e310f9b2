# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Exceptions - Error taxonomy and boundary status codes.

Internal layers raise these; snapsync.api converts them to a
(status, message) result so nothing escapes the external boundary.
"""

from enum import IntEnum


class StatusCode(IntEnum):
    """Status codes returned across the external boundary."""

    OK = 0
    INVALID_ARGUMENT = -1
    PARSE_ERROR = -2
    SCHEMA_ERROR = -3
    DUPLICATE_KEY = -4
    INVALID_HANDLE = -5
    STORAGE_ERROR = -6
    UNKNOWN_ERROR = -99


class SnapSyncError(Exception):
    """Base exception for all snapsync errors."""

    status: StatusCode = StatusCode.UNKNOWN_ERROR

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidArgumentError(SnapSyncError):
    """Raised when a required input is missing or null."""

    status = StatusCode.INVALID_ARGUMENT


class ConfigurationError(InvalidArgumentError):
    """Raised when configuration is invalid."""

    pass


class ParseError(SnapSyncError):
    """Raised when a wire payload is malformed."""

    status = StatusCode.PARSE_ERROR

    # Distinguishing codes for the kind of payload failure
    SYNTAX = 101
    WRONG_TYPE = 302

    def __init__(self, message: str, parse_code: int, details: dict | None = None):
        self.parse_code = parse_code
        super().__init__(message, details={"parse_code": parse_code, **(details or {})})


class SchemaError(SnapSyncError):
    """Raised when a schema or a row's shape is invalid."""

    status = StatusCode.SCHEMA_ERROR


class UnknownColumnError(SchemaError):
    """Raised when a row names a column the schema does not declare."""

    pass


class MissingKeyError(SchemaError):
    """Raised when a row lacks a primary-key column or holds null in one."""

    pass


class TypeMismatchError(SchemaError):
    """Raised when a value cannot be coerced to its column type."""

    pass


class DuplicateKeyError(SnapSyncError):
    """Raised when two rows of one snapshot share a primary key."""

    status = StatusCode.DUPLICATE_KEY


class InvalidHandleError(SnapSyncError):
    """Raised for unknown, released or stale handles."""

    status = StatusCode.INVALID_HANDLE


class StorageError(SnapSyncError):
    """Raised when the storage backend fails to open, read, write or commit."""

    status = StatusCode.STORAGE_ERROR

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        backend_code: int | None = None,
        backend_name: str | None = None,
    ):
        self.backend_code = backend_code
        self.backend_name = backend_name
        extra = {}
        if backend_code is not None:
            extra["backend_code"] = backend_code
        if backend_name is not None:
            extra["backend_name"] = backend_name
        super().__init__(message, details={**(details or {}), **extra})


class UnknownError(SnapSyncError):
    """Raised for failures nothing else anticipates."""

    status = StatusCode.UNKNOWN_ERROR
