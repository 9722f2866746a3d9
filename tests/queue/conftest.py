from __future__ import annotations

import os
import uuid
from collections.abc import Iterator

import pytest
from redis import Redis

from binrelay.queue import RedisTaskQueueStore

DEFAULT_TEST_REDIS_URL = "redis://127.0.0.1:6379/0"


@pytest.fixture(scope="session")
def redis_url() -> str:
    """
    Redis connection URL for queue tests.

    Set BINRELAY_TEST_REDIS_URL to point at a disposable Redis instance.
    """
    return os.environ.get("BINRELAY_TEST_REDIS_URL", DEFAULT_TEST_REDIS_URL)


@pytest.fixture(scope="session")
def redis_client(redis_url: str) -> Iterator[Redis]:
    """
    Session-scoped Redis client.

    Redis-backed tests are skipped when no server is reachable.
    """
    client = Redis.from_url(redis_url, decode_responses=False)
    try:
        client.ping()
    except Exception as exc:  # pragma: no cover
        client.close()
        pytest.skip(f"Redis test server is not reachable at {redis_url!r}: {exc}")

    yield client

    client.close()


@pytest.fixture
def redis_store(redis_client: Redis) -> Iterator[RedisTaskQueueStore]:
    """A Redis store under a per-test key prefix; keys are deleted afterwards."""
    prefix = f"binrelay_test:{uuid.uuid4().hex[:10]}"
    store = RedisTaskQueueStore(redis_client, prefix=prefix)

    yield store

    for key in redis_client.scan_iter(match=f"{prefix}:*"):
        redis_client.delete(key)
