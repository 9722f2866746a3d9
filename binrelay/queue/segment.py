from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import BinaryIO

from ..errors import QueueStoreError
from ..models import RECORD_SEPARATOR, TaskIdentity
from .base import TaskQueueStore
from .metrics import observe_append, observe_drain

logger = logging.getLogger(__name__)


class QueueSegment:
    """
    Append-only file of newline-delimited change records for one task.

    The segment owns its write handle and its lock. ``drain_and_reset``
    closes the handle, reads the file, truncates it and reopens it, all
    while holding the lock, so an append lands either wholly before or
    wholly after the drain boundary.
    """

    def __init__(self, path: Path, fsync: bool = True) -> None:
        self.path = path
        self.fsync = fsync
        self._lock = threading.Lock()
        self._fh: BinaryIO | None = None

    def _open(self) -> BinaryIO:
        if self._fh is None:
            self._fh = open(self.path, "ab", buffering=0)
        return self._fh

    def _close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def append(self, payload: bytes) -> None:
        if not payload.endswith(RECORD_SEPARATOR):
            payload += RECORD_SEPARATOR
        with self._lock:
            fh = self._open()
            view = memoryview(payload)
            # O_APPEND, unbuffered: one write call per record unless the OS
            # reports a short write.
            while view:
                written = fh.write(view)
                if written is None:
                    raise OSError(f"non-blocking write on {self.path} would block")
                view = view[written:]
            if self.fsync:
                os.fsync(fh.fileno())

    def drain_and_reset(self) -> bytes:
        with self._lock:
            self._close()
            try:
                with open(self.path, "r+b") as fh:
                    data = fh.read()
                    fh.seek(0)
                    fh.truncate()
                    if self.fsync:
                        os.fsync(fh.fileno())
            except FileNotFoundError:
                return b""
            self._open()
            return data

    def close(self) -> None:
        with self._lock:
            self._close()


class FileTaskQueueStore(TaskQueueStore):
    """
    One ``QueueSegment`` per task identity, stored under ``directory``.

    The registry lock is held only while looking up or creating a segment;
    appends and drains take the segment's own lock.
    """

    def __init__(self, directory: str | Path, fsync: bool = True) -> None:
        self.directory = Path(directory)
        self.fsync = fsync
        self.directory.mkdir(parents=True, exist_ok=True)
        self._segments: dict[TaskIdentity, QueueSegment] = {}
        self._registry_lock = threading.Lock()

    def segment_path(self, task: TaskIdentity) -> Path:
        return self.directory / task.segment_name

    def _segment(self, task: TaskIdentity, create: bool) -> QueueSegment | None:
        with self._registry_lock:
            segment = self._segments.get(task)
            if segment is None:
                path = self.segment_path(task)
                if not create and not path.exists():
                    return None
                segment = QueueSegment(path, fsync=self.fsync)
                self._segments[task] = segment
            return segment

    def append(self, task: TaskIdentity, payload: bytes) -> None:
        segment = self._segment(task, create=True)
        try:
            segment.append(payload)
        except OSError as exc:
            observe_append("error")
            raise QueueStoreError(f"Failed to append to queue {task}: {exc}") from exc
        observe_append("success")

    def drain_and_reset(self, task: TaskIdentity) -> bytes:
        segment = self._segment(task, create=False)
        if segment is None:
            observe_drain("empty")
            return b""
        try:
            data = segment.drain_and_reset()
        except OSError as exc:
            observe_drain("error")
            raise QueueStoreError(f"Failed to drain queue {task}: {exc}") from exc

        observe_drain("success" if data else "empty", len(data))
        if data:
            logger.debug("Drained %d bytes from queue %s", len(data), task)
        return data

    def close(self) -> None:
        with self._registry_lock:
            segments = list(self._segments.values())
            self._segments.clear()
        for segment in segments:
            segment.close()
