from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.engine import Engine

from ..db.session import DbSession
from ..errors import ConfigurationError


@dataclass(frozen=True)
class TableSchema:
    columns: tuple[str, ...]
    primary_key: tuple[str, ...] = field(default_factory=tuple)


class SchemaProvider(Protocol):
    def describe(self, schema: str, table: str) -> TableSchema:
        """Return the ordered columns and primary key columns of a table."""
        ...


class MySQLSchemaProvider:
    """Reads column order and primary key membership from information_schema."""

    COLUMNS_SQL = (
        "SELECT COLUMN_NAME AS name FROM information_schema.COLUMNS "
        "WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table "
        "ORDER BY ORDINAL_POSITION"
    )
    PRIMARY_KEY_SQL = (
        "SELECT COLUMN_NAME AS name FROM information_schema.KEY_COLUMN_USAGE "
        "WHERE TABLE_SCHEMA = :schema AND TABLE_NAME = :table "
        "AND CONSTRAINT_NAME = 'PRIMARY' "
        "ORDER BY ORDINAL_POSITION"
    )

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def describe(self, schema: str, table: str) -> TableSchema:
        params = {"schema": schema, "table": table}
        with DbSession(self.engine) as session:
            columns = [row["name"] for row in session.fetch_all(self.COLUMNS_SQL, params)]
            primary_key = [row["name"] for row in session.fetch_all(self.PRIMARY_KEY_SQL, params)]

        if not columns:
            raise ConfigurationError(f"Table {schema}.{table} not found in information_schema")
        return TableSchema(columns=tuple(columns), primary_key=tuple(primary_key))
