from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pymysqlreplication import BinLogStreamReader
from pymysqlreplication.event import QueryEvent, XidEvent
from pymysqlreplication.row_event import DeleteRowsEvent, UpdateRowsEvent, WriteRowsEvent

from ..config import CaptureConfig
from ..models import ChangeAction, ResumePosition
from .events import PositionListener, RowEventHandler, RowMutationEvent

logger = logging.getLogger(__name__)

ROW_EVENT_ACTIONS = (
    (WriteRowsEvent, ChangeAction.INSERT),
    (UpdateRowsEvent, ChangeAction.UPDATE),
    (DeleteRowsEvent, ChangeAction.DELETE),
)


def row_mutations(binlog_event: Any) -> list[RowMutationEvent]:
    """Split one binlog rows event into one mutation per changed row."""
    for event_type, action in ROW_EVENT_ACTIONS:
        if isinstance(binlog_event, event_type):
            break
    else:
        return []

    mutations = []
    for row in binlog_event.rows:
        if action == ChangeAction.INSERT:
            before, after = None, row.get("values")
        elif action == ChangeAction.DELETE:
            before, after = row.get("values"), None
        else:
            before, after = row.get("before_values"), row.get("after_values")
        mutations.append(
            RowMutationEvent(
                action=action,
                schema=binlog_event.schema,
                table=binlog_event.table,
                before=before,
                after=after,
            )
        )
    return mutations


def is_commit(binlog_event: Any) -> bool:
    if isinstance(binlog_event, XidEvent):
        return True
    if isinstance(binlog_event, QueryEvent):
        query = binlog_event.query
        if isinstance(query, bytes):
            query = query.decode("utf-8", "replace")
        return query.strip().upper() == "COMMIT"
    return False


class BinlogSource:
    """
    Drives the capture pipeline from a MySQL binlog stream.

    Row mutations are handed to ``handler`` strictly in binlog order, one
    per changed row. The stream position is reported to ``listener`` only at
    commit boundaries (XID, or a ``COMMIT`` query for non-transactional
    engines) that closed a transaction with captured rows: one statement may
    span several rows events behind a single table map, and resuming between
    them would skip the rest.
    """

    def __init__(
        self,
        config: CaptureConfig,
        handler: RowEventHandler,
        listener: PositionListener,
        stream_factory: Callable[..., Any] = BinLogStreamReader,
    ) -> None:
        self.config = config
        self.handler = handler
        self.listener = listener
        self.stream_factory = stream_factory
        self._stream: Optional[Any] = None
        self._uncommitted = 0

    def open(self, position: ResumePosition, blocking: bool = True) -> None:
        kwargs: dict[str, Any] = {
            "connection_settings": self.config.connection_settings(),
            "server_id": self.config.server_id,
            "blocking": blocking,
            "only_events": [WriteRowsEvent, UpdateRowsEvent, DeleteRowsEvent, XidEvent, QueryEvent],
            "only_tables": self.config.tables,
        }
        if self.config.databases:
            kwargs["only_schemas"] = list(self.config.databases)
        if not position.is_start:
            kwargs["resume_stream"] = True
            kwargs["log_file"] = position.log_file
            kwargs["log_pos"] = position.offset
            logger.info("Resuming binlog stream from %s", position)
        else:
            logger.info("No saved position; reading binlog from the beginning")

        self._stream = self.stream_factory(**kwargs)

    def dispatch(self, binlog_event: Any) -> int:
        mutations = row_mutations(binlog_event)
        for mutation in mutations:
            self.handler.on_row(mutation)
        return len(mutations)

    def current_position(self) -> ResumePosition:
        if self._stream is None or not self._stream.log_file:
            return ResumePosition.START
        return ResumePosition(log_file=self._stream.log_file, offset=int(self._stream.log_pos or 0))

    def run(self) -> None:
        """Consume the stream until it ends (non-blocking mode) or the process stops."""
        if self._stream is None:
            raise RuntimeError("BinlogSource.open() must be called before run()")
        for binlog_event in self._stream:
            if is_commit(binlog_event):
                if self._uncommitted:
                    self._uncommitted = 0
                    self.listener.on_position_synced(self.current_position())
                continue
            self._uncommitted += self.dispatch(binlog_event)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
