from __future__ import annotations

from .base import TaskQueueStore
from .redis_store import RedisTaskQueueStore
from .segment import FileTaskQueueStore, QueueSegment

__all__ = [
    "TaskQueueStore",
    "QueueSegment",
    "FileTaskQueueStore",
    "RedisTaskQueueStore",
]
