from __future__ import annotations

import pytest
from sqlalchemy.engine import Engine

from binrelay.db.session import DbSession, make_engine


def test_transaction_commits_on_success(target_engine: Engine) -> None:
    with DbSession(target_engine) as session:
        rc = session.execute(
            "INSERT INTO users_001 (id, name, age) VALUES (:id, :name, :age)",
            {"id": 1, "name": "a", "age": 20},
        )
        assert rc == 1

    with DbSession(target_engine) as session2:
        rows = session2.fetch_all("SELECT id, name FROM users_001 WHERE id = :id", {"id": 1})
        assert rows == [{"id": 1, "name": "a"}]


def test_transaction_rolls_back_on_exception(target_engine: Engine) -> None:
    with pytest.raises(RuntimeError):
        with DbSession(target_engine) as session:
            session.execute("INSERT INTO users_001 (id, name, age) VALUES (1, 'a', 20)")
            raise RuntimeError("boom")

    with DbSession(target_engine) as session2:
        assert session2.fetch_all("SELECT id FROM users_001") == []


def test_connection_is_closed_after_exit(target_engine: Engine) -> None:
    with DbSession(target_engine) as session:
        conn = session._conn
        assert conn is not None

    assert conn.closed is True


def test_nested_usage_raises_runtime_error(target_engine: Engine) -> None:
    with DbSession(target_engine) as session:
        with pytest.raises(RuntimeError):
            with session:
                pass


def test_execute_outside_context_raises(target_engine: Engine) -> None:
    with pytest.raises(RuntimeError):
        DbSession(target_engine).execute("SELECT 1")


def test_execute_returns_rowcount_for_update(target_engine: Engine) -> None:
    with DbSession(target_engine) as session:
        session.execute("INSERT INTO users_001 (id, name, age) VALUES (1, 'a', 20)")
        session.execute("INSERT INTO users_001 (id, name, age) VALUES (2, 'b', 20)")

    with DbSession(target_engine) as session:
        assert session.execute("UPDATE users_001 SET age = 21 WHERE age = :age", {"age": 20}) == 2
        assert session.execute("UPDATE users_001 SET age = 22 WHERE id = :id", {"id": 99}) == 0


def test_make_engine_ignores_timeout_for_other_drivers() -> None:
    engine = make_engine("sqlite://", statement_timeout=2.5)
    try:
        with DbSession(engine) as session:
            assert session.fetch_all("SELECT 1 AS one") == [{"one": 1}]
    finally:
        engine.dispose()
