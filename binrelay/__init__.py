from .capture.normalizer import ChangeNormalizer
from .delivery.app import create_app
from .models import ChangeAction, ChangeRecord, ResumePosition, TaskIdentity
from .position import PositionTracker
from .queue import FileTaskQueueStore, RedisTaskQueueStore
from .replay.engine import ReplayEngine

__version__ = "0.1.0"

__all__ = [
    "ChangeAction",
    "ChangeNormalizer",
    "ChangeRecord",
    "FileTaskQueueStore",
    "PositionTracker",
    "RedisTaskQueueStore",
    "ReplayEngine",
    "ResumePosition",
    "TaskIdentity",
    "create_app",
]
