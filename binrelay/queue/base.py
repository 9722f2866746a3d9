from abc import ABC, abstractmethod

from ..models import TaskIdentity


class TaskQueueStore(ABC):
    """
    Abstract base for per-task change queues.

    Appends and drains for the same task are mutually exclusive; different
    tasks never contend on a shared lock.
    """

    @abstractmethod
    def append(self, task: TaskIdentity, payload: bytes) -> None:
        """Durably append one complete, newline-terminated record."""
        ...

    @abstractmethod
    def drain_and_reset(self, task: TaskIdentity) -> bytes:
        """Return everything queued for the task and truncate it to empty."""
        ...

    def close(self) -> None:
        """Release any handles held by the store."""
        return None
