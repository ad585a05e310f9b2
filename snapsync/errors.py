# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for snapsync.

These helpers centralize wording for common failures so that all modules
present consistent, actionable messages.
"""

from typing import Any, Iterable


def explain_missing_storage_path() -> str:
    """
    Explain that no storage path was supplied to initialize().
    """

    return (
        "storage_path is required but was empty or missing. "
        "Pass the database file path for this table (any non-empty name for the memory engine)."
    )


def explain_missing_schema() -> str:
    """
    Explain that no schema DDL was supplied to initialize().
    """

    return (
        "schema_ddl is required but was empty or missing. "
        "Pass a table declaration such as "
        "\"files(path TEXT PRIMARY KEY, size INT, hash TEXT)\"."
    )


def explain_invalid_enum(name: str, value: Any, allowed: Iterable[str]) -> str:
    """
    Explain that an enumerated argument is not one of its allowed values.
    """

    return f"Invalid {name} value: {value!r}. Expected one of: {', '.join(allowed)}."


def explain_unknown_columns(table: str, columns: Iterable[str]) -> str:
    """
    Explain that a row carries columns the schema does not declare.
    """

    return (
        f"Row has columns not declared in table '{table}': {', '.join(sorted(columns))}. "
        "Every key of a row must be a declared column."
    )


def explain_missing_key(table: str, column: str) -> str:
    """
    Explain that a row is missing a primary-key value.
    """

    return (
        f"Row for table '{table}' has no value for primary-key column '{column}'. "
        "Primary-key columns are required and may not be null."
    )


def explain_type_mismatch(column: str, expected: str, value: Any) -> str:
    """
    Explain that a value cannot be converted to its column type.
    """

    return (
        f"Column '{column}' expects {expected} but got {type(value).__name__} {value!r}."
    )


def explain_duplicate_key(table: str, key: dict) -> str:
    """
    Explain that one snapshot holds two rows with the same primary key.
    """

    return f"Snapshot for table '{table}' contains primary key {key} more than once."


def explain_invalid_handle(handle: Any) -> str:
    """
    Explain that a handle is unknown, released or stale.
    """

    return (
        f"Invalid handle: {handle}. "
        "It was never issued, has been released, or the registry was torn down."
    )


def explain_invalid_env_int(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a non-negative integer."


def explain_invalid_env_bool(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. Expected one of: 1, 0, true, false, yes, no."


def explain_storage_in_use(path: str, table: str, handle: Any) -> str:
    """
    Explain that another live handle already owns a stored table.
    """

    return (
        f"Table '{table}' in {path} is already open under handle {handle}. "
        "Release that handle first; two handles on one table would overwrite each other."
    )
