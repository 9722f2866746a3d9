from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from .errors import PositionError
from .metrics.registry import POSITION_CHECKPOINTS_TOTAL
from .models import ResumePosition

logger = logging.getLogger(__name__)


class PositionTracker:
    """
    Persists the binlog resume position of one capture source.

    The position file holds ``{"name": <binlog file>, "pos": <offset>}`` and
    is replaced atomically on every save, so a crash leaves either the old
    or the new position on disk, never a torn one.

    Callers must only save a position once the change records of every
    event up to it have been appended to all subscribed queues.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> ResumePosition:
        """
        Return the last saved position, or ``ResumePosition.START`` when
        nothing has been saved yet.

        Raises:
            PositionError: If the file exists but cannot be read or parsed
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ResumePosition.START
        except OSError as exc:
            raise PositionError(f"Cannot read position file {self.path}: {exc}") from exc

        try:
            position = ResumePosition.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            raise PositionError(f"Corrupt position file {self.path}: {exc}") from exc

        logger.info("Loaded resume position %s from %s", position, self.path)
        return position

    def save(self, position: ResumePosition) -> None:
        data = json.dumps(position.to_dict()).encode("utf-8")
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        POSITION_CHECKPOINTS_TOTAL.inc()
        logger.debug("Saved resume position %s", position)
