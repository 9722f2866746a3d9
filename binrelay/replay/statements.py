from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from ..errors import InvalidIdentifierError, MissingPrimaryKeyError
from ..models import ChangeAction, ChangeRecord

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that a table or column name is safe for SQL interpolation.

    MySQL allows more than this; we accept letters, digits, underscore and
    dollar, not starting with a digit, up to 64 characters. Dotted names
    (``schema.table``) are validated part by part.

    Args:
        name: The identifier to validate
        identifier_type: Description of the identifier (for error messages)

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        InvalidIdentifierError: If the identifier is empty, not a string,
            too long or contains unsafe characters

    Example:
        >>> validate_identifier("orders", "table")
        'orders'
        >>> validate_identifier("shop.orders", "table")
        'shop.orders'
        >>> validate_identifier("'; DROP TABLE--", "table")
        InvalidIdentifierError: Invalid table "'; DROP TABLE--": ...
    """
    if not isinstance(name, str) or not name:
        raise InvalidIdentifierError(f"{identifier_type} must be a non-empty string, got {name!r}")

    for part in name.split("."):
        if not _IDENTIFIER.match(part):
            raise InvalidIdentifierError(
                f"Invalid {identifier_type} {name!r}: "
                "must start with a letter or underscore and contain only "
                "alphanumeric characters, underscores and dollar signs"
            )
        if len(part) > 64:
            raise InvalidIdentifierError(f"{identifier_type} {name!r} exceeds the 64-character limit")
    return name


@dataclass
class Statement:
    """
    A parameterized mutation ready to execute.

    ``params`` keeps insertion order, which is the positional order of the
    placeholders in ``sql``.
    """
    sql: str
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def args(self) -> list[Any]:
        return list(self.params.values())

    def clause(self) -> TextClause:
        return text(self.sql)


def target_table(record: ChangeRecord, suffix: str = "") -> str:
    """Physical target table: the unqualified logical name plus ``suffix``."""
    name = f"{record.table_name}{suffix}"
    return validate_identifier(name, "table")


def _key_positions(record: ChangeRecord) -> list[int]:
    if not record.primary_key:
        raise MissingPrimaryKeyError(
            f"Table {record.table!r} has no primary key; "
            f"refusing to replay {record.action.value} without a WHERE clause"
        )
    return [record.columns.index(col) for col in record.primary_key]


def build_insert(record: ChangeRecord, suffix: str = "") -> Statement:
    table = target_table(record, suffix)
    columns = [validate_identifier(c, "column") for c in record.columns]

    params = {f"v{i}": value for i, value in enumerate(record.new_values)}
    placeholders = ", ".join(f":{name}" for name in params)
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    return Statement(sql, params)


def build_update(record: ChangeRecord, suffix: str = "") -> Statement:
    """
    SET every column from the after-image, WHERE the primary key matches
    the before-image, so a changed key still addresses the existing row.
    """
    positions = _key_positions(record)
    table = target_table(record, suffix)
    columns = [validate_identifier(c, "column") for c in record.columns]
    old, new = record.old_values, record.new_values

    params: dict[str, Any] = {}
    set_clauses = []
    for i, (col, value) in enumerate(zip(columns, new)):
        set_clauses.append(f"{col} = :v{i}")
        params[f"v{i}"] = value

    where_clauses = []
    for i, pos in enumerate(positions):
        where_clauses.append(f"{columns[pos]} = :k{i}")
        params[f"k{i}"] = old[pos]

    sql = f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {' AND '.join(where_clauses)}"
    return Statement(sql, params)


def build_delete(record: ChangeRecord, suffix: str = "") -> Statement:
    positions = _key_positions(record)
    table = target_table(record, suffix)
    old = record.old_values

    params: dict[str, Any] = {}
    where_clauses = []
    for i, pos in enumerate(positions):
        col = validate_identifier(record.columns[pos], "column")
        where_clauses.append(f"{col} = :k{i}")
        params[f"k{i}"] = old[pos]

    sql = f"DELETE FROM {table} WHERE {' AND '.join(where_clauses)}"
    return Statement(sql, params)


_BUILDERS = {
    ChangeAction.INSERT: build_insert,
    ChangeAction.UPDATE: build_update,
    ChangeAction.DELETE: build_delete,
}


def build_statement(record: ChangeRecord, suffix: str = "") -> Statement:
    """
    Reconstruct the mutation for one change record.

    Raises:
        MissingPrimaryKeyError: update/delete on a table without a primary key
        InvalidIdentifierError: unsafe table or column name
    """
    return _BUILDERS[record.action](record, suffix)
