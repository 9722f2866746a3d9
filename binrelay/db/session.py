from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.sql import TextClause


def make_engine(url: str, statement_timeout: float | None = None) -> Engine:
    """
    Create an engine for a source or target database.

    For the PyMySQL driver ``statement_timeout`` becomes the socket
    read/write timeout, which bounds every statement round trip.
    """
    parsed = make_url(url)
    connect_args: dict[str, Any] = {}
    if statement_timeout is not None and parsed.drivername == "mysql+pymysql":
        seconds = max(1, int(statement_timeout))
        connect_args = {"read_timeout": seconds, "write_timeout": seconds}
    return create_engine(parsed, pool_pre_ping=True, connect_args=connect_args)


class DbSession:
    """
    One transaction on one pooled connection.

    Commits on clean exit, rolls back when the block raises:

        with DbSession(engine) as session:
            session.execute(...)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._conn: Connection | None = None
        self._tx = None

    def __enter__(self) -> "DbSession":
        if self._conn is not None:
            raise RuntimeError("DbSession is already active; nested sessions are not allowed")
        self._conn = self.engine.connect()
        self._tx = self._conn.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._tx is not None:
                if exc_type:
                    self._tx.rollback()
                else:
                    self._tx.commit()
        finally:
            if self._conn is not None:
                self._conn.close()

            self._conn = None
            self._tx = None

        return False

    def _connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError("DbSession is not active; use within a context manager")
        return self._conn

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """Execute a mutation and return the affected row count."""
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, dict(params or {}))
        try:
            return int(result.rowcount or 0)
        finally:
            result.close()

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, dict(params or {}))
        return [dict(row) for row in result.mappings()]
