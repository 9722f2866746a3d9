from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Iterable, Mapping, Optional

from ..errors import NormalizationError, SerializationError
from ..metrics.registry import CAPTURED_CHANGES_TOTAL, DROPPED_CHANGES_TOTAL
from ..models import ChangeAction, ChangeRecord, ResumePosition, TaskIdentity
from ..position import PositionTracker
from ..queue.base import TaskQueueStore
from .events import RowMutationEvent
from .schema import SchemaProvider, TableSchema

logger = logging.getLogger(__name__)


class ChangeNormalizer:
    """
    Turns row mutation events into change records and fans them out to the
    queues of every task subscribed to the table.

    Checkpointing: a position is saved only after every event up to it was
    appended to all subscribed queues. When an event is dropped, the
    checkpoint for its position is skipped; the next successful checkpoint
    moves past it and the loss is reported.

    Queue append failures propagate: the capture source stops and resumes
    from the last checkpoint on restart, which may redeliver events to
    queues that already received them.
    """

    def __init__(
        self,
        schema_provider: SchemaProvider,
        store: TaskQueueStore,
        tracker: PositionTracker,
        tasks: Iterable[TaskIdentity],
        checkpoint_every: int = 1,
    ) -> None:
        self.schema_provider = schema_provider
        self.store = store
        self.tracker = tracker
        self.checkpoint_every = checkpoint_every

        self._subscribers: dict[tuple[str, str], list[TaskIdentity]] = defaultdict(list)
        for task in tasks:
            self._subscribers[(task.database, task.table)].append(task)

        self._schemas: dict[tuple[str, str], TableSchema] = {}
        self._lock = threading.Lock()
        self._dropped_since_checkpoint = 0
        self._dropped_unreported = 0
        self._events_since_checkpoint = 0
        self._pending: Optional[ResumePosition] = None

    def subscribers(self, schema: str, table: str) -> list[TaskIdentity]:
        return list(self._subscribers.get((schema, table), ()))

    def table_schema(self, schema: str, table: str) -> TableSchema:
        """Columns and primary key of a table, looked up once and cached."""
        key = (schema, table)
        cached = self._schemas.get(key)
        if cached is None:
            cached = self.schema_provider.describe(schema, table)
            self._schemas[key] = cached
            logger.info(
                "Schema for %s.%s: columns=%s primary_key=%s",
                schema,
                table,
                list(cached.columns),
                list(cached.primary_key),
            )
        return cached

    def invalidate_schema(self, schema: str, table: str) -> None:
        self._schemas.pop((schema, table), None)

    def normalize(self, event: RowMutationEvent) -> ChangeRecord:
        """
        Build the change record for one event.

        Raises:
            NormalizationError: If an image does not fit the table's columns
            SerializationError: If the resulting record is inconsistent
        """
        table_schema = self.table_schema(event.schema, event.table)
        columns = list(table_schema.columns)

        if event.action == ChangeAction.INSERT:
            rows = _ordered_values(event.after, columns, event)
        elif event.action == ChangeAction.DELETE:
            rows = _ordered_values(event.before, columns, event)
        else:
            rows = _ordered_values(event.before, columns, event) + _ordered_values(
                event.after, columns, event
            )

        return ChangeRecord(
            action=event.action,
            table=f"{event.schema}.{event.table}",
            columns=columns,
            rows=rows,
            primary_key=list(table_schema.primary_key),
        )

    def on_row(self, event: RowMutationEvent) -> None:
        tasks = self.subscribers(event.schema, event.table)
        if not tasks:
            return

        qualified = f"{event.schema}.{event.table}"
        try:
            payload = self.normalize(event).to_bytes()
        except (NormalizationError, SerializationError) as exc:
            if isinstance(exc, NormalizationError):
                # The table may have been altered; describe it again next time.
                self.invalidate_schema(event.schema, event.table)
            with self._lock:
                self._dropped_since_checkpoint += 1
            reason = "normalization" if isinstance(exc, NormalizationError) else "serialization"
            DROPPED_CHANGES_TOTAL.labels(table=qualified, reason=reason).inc()
            logger.error("Dropping %s on %s: %s", event.action.value, qualified, exc)
            return

        for task in tasks:
            self.store.append(task, payload)

        CAPTURED_CHANGES_TOTAL.labels(table=qualified, action=event.action.value).inc()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Queued %s for %d task(s): %s", qualified, len(tasks), payload.rstrip().decode("utf-8"))

    def on_position_synced(self, position: ResumePosition) -> None:
        with self._lock:
            if self._dropped_since_checkpoint:
                logger.warning(
                    "Not checkpointing %s: %d event(s) at or before it were dropped",
                    position,
                    self._dropped_since_checkpoint,
                )
                self._dropped_unreported += self._dropped_since_checkpoint
                self._dropped_since_checkpoint = 0
                return

            self._pending = position
            self._events_since_checkpoint += 1
            if self._events_since_checkpoint < self.checkpoint_every:
                return
            self._save_pending()

    def flush(self) -> None:
        """Persist the latest eligible position, if one is pending."""
        with self._lock:
            if self._pending is not None:
                self._save_pending()

    def _save_pending(self) -> None:
        position = self._pending
        if position is None:
            return
        self.tracker.save(position)
        if self._dropped_unreported:
            logger.error(
                "Checkpoint advanced to %s past %d dropped event(s); they will not be recaptured",
                position,
                self._dropped_unreported,
            )
            self._dropped_unreported = 0
        self._pending = None
        self._events_since_checkpoint = 0


def _ordered_values(
    image: Optional[Mapping[str, Any]],
    columns: list[str],
    event: RowMutationEvent,
) -> list[Any]:
    if image is None:
        raise NormalizationError(
            f"{event.action.value} on {event.schema}.{event.table} is missing a row image"
        )
    if all(col in image for col in columns):
        return [image[col] for col in columns]
    # Without full binlog row metadata the client cannot name columns; fall
    # back to position when the width matches.
    if len(image) == len(columns):
        return list(image.values())
    raise NormalizationError(
        f"Row image of {event.schema}.{event.table} has columns {sorted(image)}, "
        f"expected {columns}"
    )
