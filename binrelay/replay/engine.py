from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import ReplayConfig
from ..db.session import DbSession
from ..errors import (
    DeliveryError,
    InvalidIdentifierError,
    MissingPrimaryKeyError,
    SerializationError,
)
from ..models import ChangeAction, ChangeRecord, iter_payload
from .metrics import observe_apply, observe_poll
from .statements import build_statement

logger = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
FAILED = "failed"


def is_duplicate_key(exc: IntegrityError) -> bool:
    # MySQL error code 1062 is ER_DUP_ENTRY; SQLite reports UNIQUE constraint failures.
    orig = getattr(exc, "orig", None)
    error_msg = str(orig) if orig is not None else str(exc)
    error_code = getattr(orig, "args", [None])[0] if orig is not None else None
    return (
        error_code == 1062
        or "Duplicate entry" in error_msg
        or "duplicate key" in error_msg.lower()
        or "UNIQUE constraint failed" in error_msg
    )


@dataclass
class ReplayStats:
    applied: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.applied + self.duplicates + self.skipped + self.failed

    def count(self, status: str) -> None:
        if status == APPLIED:
            self.applied += 1
        elif status == DUPLICATE:
            self.duplicates += 1
        elif status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class ReplayEngine:
    """
    Polls the delivery endpoint for one task and replays what it receives.

    Each record is applied in its own transaction, in payload order. A
    record that cannot be decoded, built or executed is logged and skipped;
    records already applied from the same payload are not rolled back and
    the failed one is not retried. Transport failures are retried after the
    poll interval, forever, until ``stop()`` is called.

    Usage:
        engine = ReplayEngine(config, make_engine(config.target_url))
        threading.Thread(target=engine.run).start()
        ...
        engine.stop()
    """

    def __init__(
        self,
        config: ReplayConfig,
        engine: Engine,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=config.endpoint_url,
            timeout=config.request_timeout,
        )
        self._stopping = threading.Event()
        # Tables whose update/delete replay is refused for lack of a primary key.
        self._keyless_tables: set[str] = set()

    def fetch(self) -> bytes:
        """
        Drain this task's queue on the delivery endpoint.

        Raises:
            DeliveryError: On transport failure, timeout or non-200 status
        """
        task = self.config.task
        try:
            response = self._client.get(
                "/consume",
                params={"account": task.account, "db": task.database, "table": task.table},
            )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Polling {self.config.endpoint_url} failed: {exc}") from exc

        if response.status_code != 200:
            raise DeliveryError(
                f"Delivery endpoint returned HTTP {response.status_code}: {response.text[:200]}"
            )
        return response.content

    def apply(self, record: ChangeRecord) -> str:
        """Apply one record; returns the outcome (applied, duplicate, skipped or failed)."""
        table = record.table_name
        action = record.action.value

        if not self.config.capabilities_for(table).allows(action):
            logger.debug("Replay of %s on %s is disabled; skipping", action, table)
            observe_apply(table, action, SKIPPED)
            return SKIPPED

        if record.action != ChangeAction.INSERT and table in self._keyless_tables:
            logger.warning("Skipping %s on %s: table has no primary key", action, table)
            observe_apply(table, action, SKIPPED)
            return SKIPPED

        try:
            statement = build_statement(record, self.config.table_suffix)
        except MissingPrimaryKeyError as exc:
            self._keyless_tables.add(table)
            logger.error("%s; further updates and deletes on %s will be skipped", exc, table)
            observe_apply(table, action, FAILED)
            return FAILED
        except InvalidIdentifierError as exc:
            logger.error("Refusing to replay %s on %r: %s", action, record.table, exc)
            observe_apply(table, action, FAILED)
            return FAILED

        start_time = time.monotonic()
        try:
            with DbSession(self.engine) as session:
                rowcount = session.execute(statement.clause(), statement.params)
        except IntegrityError as exc:
            if record.action == ChangeAction.INSERT and is_duplicate_key(exc):
                logger.info("Duplicate key suppressed for insert into %s: %s", table, exc.orig)
                observe_apply(table, action, DUPLICATE, time.monotonic() - start_time)
                return DUPLICATE
            logger.error("Failed to %s %s: %s", action, table, exc)
            observe_apply(table, action, FAILED, time.monotonic() - start_time)
            return FAILED
        except SQLAlchemyError as exc:
            logger.error("Failed to %s %s: %s", action, table, exc)
            observe_apply(table, action, FAILED, time.monotonic() - start_time)
            return FAILED

        observe_apply(table, action, APPLIED, time.monotonic() - start_time)
        if rowcount == 0 and record.action != ChangeAction.INSERT:
            logger.warning("%s on %s matched no rows", action, table)
        else:
            logger.debug("Replayed %s on %s", action, table)
        return APPLIED

    def apply_payload(self, payload: bytes) -> ReplayStats:
        stats = ReplayStats()
        for line in iter_payload(payload):
            try:
                record = ChangeRecord.from_bytes(line)
            except SerializationError as exc:
                logger.error("Dropping undecodable change record: %s", exc)
                observe_apply("unknown", "unknown", FAILED)
                stats.count(FAILED)
                continue
            stats.count(self.apply(record))
        return stats

    def poll_once(self) -> ReplayStats:
        """
        Fetch and apply one payload.

        Raises:
            DeliveryError: If the endpoint could not be polled
        """
        try:
            payload = self.fetch()
        except DeliveryError:
            observe_poll("error")
            raise

        observe_poll("success" if payload else "empty")
        if not payload:
            return ReplayStats()

        stats = self.apply_payload(payload)
        logger.info(
            "Task %s: applied=%d duplicates=%d skipped=%d failed=%d",
            self.config.task_name,
            stats.applied,
            stats.duplicates,
            stats.skipped,
            stats.failed,
        )
        return stats

    def run(self) -> None:
        logger.info(
            "Replaying task %s from %s every %.1fs",
            self.config.task_name,
            self.config.endpoint_url,
            self.config.poll_interval,
        )
        while not self._stopping.is_set():
            try:
                self.poll_once()
            except DeliveryError as exc:
                logger.error("%s; retrying in %.1fs", exc, self.config.poll_interval)
            self._stopping.wait(self.config.poll_interval)

    def stop(self) -> None:
        """Stop polling at the next poll boundary."""
        self._stopping.set()

    def close(self) -> None:
        self.stop()
        if self._owns_client:
            self._client.close()
