from __future__ import annotations

import logging

from redis import Redis
from redis.exceptions import RedisError

from ..errors import QueueStoreError
from ..models import RECORD_SEPARATOR, TaskIdentity
from .base import TaskQueueStore
from .metrics import observe_append, observe_drain

logger = logging.getLogger(__name__)


class RedisTaskQueueStore(TaskQueueStore):
    """
    Task queues kept as Redis lists, one list per task identity.

    Every record is one list element, so a record is never split. The drain
    reads and deletes the list inside one MULTI/EXEC transaction; an RPUSH
    from the capture side executes either before or after it.
    """

    def __init__(self, redis: Redis, prefix: str = "binrelay:queue") -> None:
        self.redis = redis
        self.prefix = prefix

    def key(self, task: TaskIdentity) -> str:
        return f"{self.prefix}:{task.account}:{task.database}:{task.table}"

    def append(self, task: TaskIdentity, payload: bytes) -> None:
        if not payload.endswith(RECORD_SEPARATOR):
            payload += RECORD_SEPARATOR
        try:
            self.redis.rpush(self.key(task), payload)
        except RedisError as exc:
            observe_append("error")
            raise QueueStoreError(f"Failed to append to queue {task}: {exc}") from exc
        observe_append("success")

    def drain_and_reset(self, task: TaskIdentity) -> bytes:
        key = self.key(task)
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            items, _ = pipe.execute()
        except RedisError as exc:
            observe_drain("error")
            raise QueueStoreError(f"Failed to drain queue {task}: {exc}") from exc

        data = b"".join(item if isinstance(item, bytes) else item.encode("utf-8") for item in items)
        observe_drain("success" if data else "empty", len(data))
        if data:
            logger.debug("Drained %d records from queue %s", len(items), task)
        return data

    def close(self) -> None:
        self.redis.close()
