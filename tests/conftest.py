from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from binrelay.config import ReplayConfig
from binrelay.models import TaskIdentity
from binrelay.queue import FileTaskQueueStore


@pytest.fixture
def task() -> TaskIdentity:
    return TaskIdentity(account="repl", database="shop", table="users")


@pytest.fixture
def file_store(tmp_path: Path) -> Iterator[FileTaskQueueStore]:
    """A file-backed queue store rooted in a per-test directory."""
    store = FileTaskQueueStore(tmp_path / "queues")
    yield store
    store.close()


@pytest.fixture
def target_engine() -> Iterator[Engine]:
    """
    In-memory SQLite target shared across connections.

    Tables follow the default physical naming (logical name + ``_001``):
    - users_001: keyed by id
    - orders_001: composite key (shop_id, order_no)
    - events_001: no primary key
    """
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with eng.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE users_001 (id INTEGER PRIMARY KEY, name TEXT, age INTEGER)"
        )
        conn.exec_driver_sql(
            "CREATE TABLE orders_001 ("
            "shop_id INTEGER NOT NULL, order_no INTEGER NOT NULL, total INTEGER, "
            "PRIMARY KEY (shop_id, order_no))"
        )
        conn.exec_driver_sql("CREATE TABLE events_001 (name TEXT, payload TEXT)")
    yield eng
    eng.dispose()


@pytest.fixture
def replay_config_factory(task: TaskIdentity) -> Callable[..., ReplayConfig]:
    def _create(**overrides) -> ReplayConfig:
        params = {
            "task": task,
            "target_url": "sqlite://",
            "endpoint_url": "http://delivery.test",
            "poll_interval": 0.01,
        }
        params.update(overrides)
        return ReplayConfig(**params)

    return _create


@pytest.fixture
def replay_config(replay_config_factory: Callable[..., ReplayConfig]) -> ReplayConfig:
    return replay_config_factory()


@pytest.fixture
def read_rows(target_engine: Engine) -> Callable[..., list[tuple]]:
    """Read a target table as a list of tuples."""

    def _read(table: str, order_by: str = "id") -> list[tuple]:
        with target_engine.connect() as conn:
            result = conn.exec_driver_sql(f"SELECT * FROM {table} ORDER BY {order_by}")
            return [tuple(row) for row in result]

    return _read
