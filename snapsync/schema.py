# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapsync Schema - Table declarations and row validation.

A schema is parsed once per handle from a small DDL dialect:

    [CREATE TABLE [IF NOT EXISTS]] name (
        column [type] [NOT NULL] [PRIMARY KEY],
        ...
        [, PRIMARY KEY (column, ...)]
    ) [WITHOUT ROWID] [;]

Every incoming row is validated against it. Coercion rules are fixed:

    integer  int (64-bit); integral float -> int; "[+-]digits" -> int
    real     float (finite); int -> float; numeric string -> float
    text     str; int -> decimal string
    boolean  bool; 0/1 -> bool; "true"/"false"/"1"/"0" -> bool
    any      None/int (64-bit)/float/str; bool -> int

With coercion disabled only the native type (plus int -> float for real)
is accepted.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

from snapsync.errors import (
    explain_missing_key,
    explain_type_mismatch,
    explain_unknown_columns,
)
from snapsync.exceptions import (
    MissingKeyError,
    SchemaError,
    TypeMismatchError,
    UnknownColumnError,
)


class ColumnType(str, Enum):
    """Scalar type of a column."""

    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BOOLEAN = "boolean"
    ANY = "any"  # Untyped, null-capable


# Declared type name -> column type
_TYPE_NAMES: Dict[str, ColumnType] = {
    "INT": ColumnType.INTEGER,
    "INTEGER": ColumnType.INTEGER,
    "BIGINT": ColumnType.INTEGER,
    "SMALLINT": ColumnType.INTEGER,
    "TINYINT": ColumnType.INTEGER,
    "REAL": ColumnType.REAL,
    "FLOAT": ColumnType.REAL,
    "DOUBLE": ColumnType.REAL,
    "NUMERIC": ColumnType.REAL,
    "DECIMAL": ColumnType.REAL,
    "TEXT": ColumnType.TEXT,
    "VARCHAR": ColumnType.TEXT,
    "CHAR": ColumnType.TEXT,
    "CLOB": ColumnType.TEXT,
    "STRING": ColumnType.TEXT,
    "BOOL": ColumnType.BOOLEAN,
    "BOOLEAN": ColumnType.BOOLEAN,
    "ANY": ColumnType.ANY,
    "NULL": ColumnType.ANY,
}

# Physical SQLite declared type per column type
SQLITE_TYPES: Dict[ColumnType, str] = {
    ColumnType.INTEGER: "INTEGER",
    ColumnType.REAL: "REAL",
    ColumnType.TEXT: "TEXT",
    ColumnType.BOOLEAN: "INTEGER",
    ColumnType.ANY: "",
}

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLE = re.compile(
    r"^\s*(?:CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?)?"
    r"([A-Za-z_][A-Za-z0-9_]*)\s*\((.*)\)\s*(?:WITHOUT\s+ROWID\s*)?;?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_TABLE_PK = re.compile(r"^PRIMARY\s+KEY\s*\((.*)\)$", re.IGNORECASE | re.DOTALL)
_TYPE_WITH_SIZE = re.compile(r"^([A-Za-z]+)\s*(?:\(\s*\d+(?:\s*,\s*\d+)?\s*\))?$")
_PRIMARY_KEY = re.compile(r"\bPRIMARY\s+KEY\b", re.IGNORECASE)
_NOT_NULL = re.compile(r"\bNOT\s+NULL\b", re.IGNORECASE)
_INT_TEXT = re.compile(r"^[+-]?\d+$")

Key = Tuple[Any, ...]
Row = Dict[str, Any]


@dataclass(frozen=True)
class Column:
    """A declared column."""

    name: str
    type: ColumnType
    nullable: bool = True
    primary_key: bool = False


@dataclass(frozen=True)
class Schema:
    """
    Parsed table declaration.

    Columns keep declaration order; primary_key keeps PK declaration order.
    """

    table: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def value_columns(self) -> List[Column]:
        """Non-key columns, in declaration order."""
        return [c for c in self.columns if not c.primary_key]

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise UnknownColumnError(explain_unknown_columns(self.table, [name]))

    def key_of(self, row: Mapping[str, Any]) -> Key:
        """Primary-key tuple of a validated row."""
        return tuple(row[name] for name in self.primary_key)

    def key_dict(self, key: Key) -> Dict[str, Any]:
        return dict(zip(self.primary_key, key))


# ============================================================================
# Parsing
# ============================================================================

def _split_top_level(body: str) -> Iterator[str]:
    """Split on commas that are not nested inside parentheses."""
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise SchemaError("Unbalanced parentheses in schema")
        elif ch == "," and depth == 0:
            yield body[start:i].strip()
            start = i + 1
    if depth != 0:
        raise SchemaError("Unbalanced parentheses in schema")
    yield body[start:].strip()


def _check_identifier(name: str, what: str) -> str:
    if not _IDENTIFIER.match(name):
        raise SchemaError(f"Invalid {what} name: {name!r}")
    return name


def _parse_type(declared: str, column: str) -> ColumnType:
    if not declared:
        return ColumnType.ANY
    match = _TYPE_WITH_SIZE.match(declared)
    if not match or match.group(1).upper() not in _TYPE_NAMES:
        raise SchemaError(
            f"Unsupported type {declared!r} for column '{column}'",
            details={"supported": sorted(_TYPE_NAMES)},
        )
    return _TYPE_NAMES[match.group(1).upper()]


def _parse_column(definition: str) -> Tuple[str, ColumnType, bool, bool]:
    """Parse one column definition into (name, type, not_null, primary_key)."""
    tokens = definition.split(None, 1)
    name = _check_identifier(tokens[0].strip('"`[]'), "column")
    rest = tokens[1] if len(tokens) > 1 else ""

    rest, pk_hits = _PRIMARY_KEY.subn(" ", rest)
    rest, nn_hits = _NOT_NULL.subn(" ", rest)

    rest = " ".join(rest.split())
    return name, _parse_type(rest, name), nn_hits > 0, pk_hits > 0


def parse_schema(ddl: str) -> Schema:
    """
    Parse a table declaration into a Schema.

    Args:
        ddl: Declaration text, e.g. "files(path TEXT PRIMARY KEY, size INT)"

    Returns:
        The parsed Schema

    Raises:
        SchemaError: If the text is not exactly one valid table declaration
    """
    if not ddl or not ddl.strip():
        raise SchemaError("Schema declaration is empty")

    match = _TABLE.match(ddl)
    if not match:
        raise SchemaError(
            "Schema must be a single table declaration",
            details={"ddl": ddl.strip()[:200]},
        )
    table = _check_identifier(match.group(1), "table")
    body = match.group(2)

    parsed: List[Tuple[str, ColumnType, bool, bool]] = []
    table_pk: List[str] = []
    for part in _split_top_level(body):
        if not part:
            raise SchemaError(f"Empty column definition in table '{table}'")
        pk_match = _TABLE_PK.match(part)
        if pk_match:
            if table_pk:
                raise SchemaError(f"Table '{table}' declares PRIMARY KEY more than once")
            table_pk = [
                _check_identifier(p.strip().strip('"`[]'), "column")
                for p in pk_match.group(1).split(",")
            ]
            continue
        if ";" in part:
            raise SchemaError("Schema must declare exactly one table")
        parsed.append(_parse_column(part))

    if not parsed:
        raise SchemaError(f"Table '{table}' declares no columns")

    # SQLite column names are case-insensitive
    canonical: Dict[str, str] = {}
    for name, _, _, _ in parsed:
        if name.lower() in canonical:
            raise SchemaError(f"Duplicate column '{name}' in table '{table}'")
        canonical[name.lower()] = name

    inline_pk = [p[0] for p in parsed if p[3]]
    if inline_pk and table_pk:
        raise SchemaError(
            f"Table '{table}' mixes column-level and table-level PRIMARY KEY"
        )
    declared_pk = table_pk or inline_pk
    if not declared_pk:
        raise SchemaError(f"Table '{table}' has no primary key")
    for name in declared_pk:
        if name.lower() not in canonical:
            raise SchemaError(f"Primary-key column '{name}' is not declared in table '{table}'")
    primary_key = [canonical[name.lower()] for name in declared_pk]
    if len(set(primary_key)) != len(primary_key):
        raise SchemaError(f"Table '{table}' repeats a primary-key column")

    columns = tuple(
        Column(
            name=name,
            type=col_type,
            nullable=not (not_null or name in primary_key),
            primary_key=name in primary_key,
        )
        for name, col_type, not_null, _ in parsed
    )
    return Schema(table=table, columns=columns, primary_key=tuple(primary_key))


# ============================================================================
# Validation
# ============================================================================

def _mismatch(column: Column, value: Any) -> TypeMismatchError:
    return TypeMismatchError(
        explain_type_mismatch(column.name, column.type.value, value),
        details={"column": column.name},
    )


def _coerce_integer(column: Column, value: Any, coerce: bool) -> int:
    if isinstance(value, bool):
        raise _mismatch(column, value)
    if isinstance(value, int):
        result = value
    elif coerce and isinstance(value, float) and math.isfinite(value) and value.is_integer():
        result = int(value)
    elif coerce and isinstance(value, str) and _INT_TEXT.match(value.strip()):
        result = int(value.strip())
    else:
        raise _mismatch(column, value)
    if not INT64_MIN <= result <= INT64_MAX:
        raise _mismatch(column, value)
    return result


def _coerce_real(column: Column, value: Any, coerce: bool) -> float:
    if isinstance(value, bool):
        raise _mismatch(column, value)
    if isinstance(value, (int, float)):
        result = float(value)
    elif coerce and isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            raise _mismatch(column, value) from None
    else:
        raise _mismatch(column, value)
    if not math.isfinite(result):
        raise _mismatch(column, value)
    return result


def _check_utf8(column: Column, value: str) -> str:
    # Lone surrogates survive json.loads but cannot be stored
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise _mismatch(column, value) from None
    return value


def _coerce_text(column: Column, value: Any, coerce: bool) -> str:
    if isinstance(value, str):
        return _check_utf8(column, value)
    if coerce and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise _mismatch(column, value)


def _coerce_boolean(column: Column, value: Any, coerce: bool) -> bool:
    if isinstance(value, bool):
        return value
    if coerce and isinstance(value, int) and value in (0, 1):
        return bool(value)
    if coerce and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
    raise _mismatch(column, value)


def _coerce_any(column: Column, value: Any, coerce: bool) -> Any:
    if isinstance(value, bool):
        # Stored as INTEGER; keeping bool would never compare equal on read-back
        return int(value)
    if isinstance(value, float) and not math.isfinite(value):
        raise _mismatch(column, value)
    if isinstance(value, int) and not INT64_MIN <= value <= INT64_MAX:
        raise _mismatch(column, value)
    if isinstance(value, str):
        return _check_utf8(column, value)
    if isinstance(value, (int, float)):
        return value
    raise _mismatch(column, value)


_COERCERS = {
    ColumnType.INTEGER: _coerce_integer,
    ColumnType.REAL: _coerce_real,
    ColumnType.TEXT: _coerce_text,
    ColumnType.BOOLEAN: _coerce_boolean,
    ColumnType.ANY: _coerce_any,
}


def coerce_value(column: Column, value: Any, coerce: bool = True) -> Any:
    """Convert one value to its column's type, or raise TypeMismatchError."""
    if value is None:
        if not column.nullable:
            raise _mismatch(column, value)
        return None
    return _COERCERS[column.type](column, value, coerce)


def validate_row(
    schema: Schema,
    row: Any,
    *,
    coerce: bool = True,
    fill_missing: bool = True,
) -> Row:
    """
    Validate and normalize one row.

    Args:
        schema: Table schema
        row: Candidate row (mapping of column name to scalar)
        coerce: Apply the fixed coercion rules
        fill_missing: Fill absent non-key columns with None; when False
            absent columns are left out of the result

    Returns:
        A new dict with normalized values, in column declaration order

    Raises:
        SchemaError: If the row is not a mapping or a required column is absent
        UnknownColumnError: If the row names an undeclared column
        MissingKeyError: If a primary-key column is absent or null
        TypeMismatchError: If a value cannot be converted
    """
    if not isinstance(row, Mapping):
        raise SchemaError(
            f"Row for table '{schema.table}' must be an object, got {type(row).__name__}"
        )

    declared = set(schema.column_names)
    unknown = [name for name in row if name not in declared]
    if unknown:
        raise UnknownColumnError(
            explain_unknown_columns(schema.table, unknown),
            details={"columns": sorted(unknown)},
        )

    for name in schema.primary_key:
        if row.get(name) is None:
            raise MissingKeyError(
                explain_missing_key(schema.table, name),
                details={"column": name},
            )

    result: Row = {}
    for column in schema.columns:
        if column.name in row:
            result[column.name] = coerce_value(column, row[column.name], coerce)
        elif fill_missing:
            if not column.nullable:
                raise SchemaError(
                    f"Row for table '{schema.table}' is missing required column '{column.name}'",
                    details={"column": column.name},
                )
            result[column.name] = None
    return result


def validate_rows(
    schema: Schema,
    rows: Sequence[Any],
    *,
    coerce: bool = True,
    fill_missing: bool = True,
) -> List[Row]:
    """Validate a batch of rows; the first failing row aborts the batch."""
    validated = []
    for index, row in enumerate(rows):
        try:
            validated.append(
                validate_row(schema, row, coerce=coerce, fill_missing=fill_missing)
            )
        except SchemaError as e:
            e.details.setdefault("row_index", index)
            raise
    return validated
