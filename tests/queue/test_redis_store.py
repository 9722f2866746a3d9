from __future__ import annotations

from redis import Redis

from binrelay.models import TaskIdentity
from binrelay.queue import RedisTaskQueueStore


class TestRedisTaskQueueStore:
    """Tests for the Redis list backend."""

    def test_key_per_task(self, redis_store: RedisTaskQueueStore, task: TaskIdentity) -> None:
        assert redis_store.key(task) == f"{redis_store.prefix}:repl:shop:users"

    def test_append_then_drain(self, redis_store: RedisTaskQueueStore, task: TaskIdentity) -> None:
        redis_store.append(task, b'{"n":1}\n')
        redis_store.append(task, b'{"n":2}')

        assert redis_store.drain_and_reset(task) == b'{"n":1}\n{"n":2}\n'

    def test_drain_deletes_the_list(
        self, redis_client: Redis, redis_store: RedisTaskQueueStore, task: TaskIdentity
    ) -> None:
        redis_store.append(task, b'{"n":1}\n')

        redis_store.drain_and_reset(task)

        assert redis_client.exists(redis_store.key(task)) == 0
        assert redis_store.drain_and_reset(task) == b""

    def test_drain_of_unknown_task_is_empty(self, redis_store: RedisTaskQueueStore, task: TaskIdentity) -> None:
        assert redis_store.drain_and_reset(task) == b""

    def test_append_after_drain_is_not_lost(self, redis_store: RedisTaskQueueStore, task: TaskIdentity) -> None:
        redis_store.append(task, b'{"n":1}\n')
        redis_store.drain_and_reset(task)
        redis_store.append(task, b'{"n":2}\n')

        assert redis_store.drain_and_reset(task) == b'{"n":2}\n'
