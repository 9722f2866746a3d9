from __future__ import annotations

import datetime
import decimal
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Sequence

from .errors import ConfigurationError, SerializationError

RECORD_SEPARATOR = b"\n"

_IDENTITY_PART = re.compile(r"^[A-Za-z0-9_$@][A-Za-z0-9_$@.-]*$")


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TaskIdentity:
    """
    (account, database, table) naming one consumer subscription.

    Each component ends up in a file name, so it is restricted to a safe
    alphabet and may not start with a dot.
    """
    account: str
    database: str
    table: str

    def __post_init__(self) -> None:
        for name in ("account", "database", "table"):
            value = getattr(self, name)
            if not isinstance(value, str) or not _IDENTITY_PART.match(value):
                raise ConfigurationError(f"Invalid task {name} {value!r}")

    @property
    def segment_name(self) -> str:
        """
        File name of this task's queue segment.

        ``-`` joins the components, so a ``-`` inside one is written as
        ``%2D``; ``%`` is outside the component alphabet, which keeps the
        mapping one-to-one.
        """
        parts = (self.account, self.database, self.table)
        return "-".join(part.replace("-", "%2D") for part in parts) + ".blog"

    def __str__(self) -> str:
        return f"{self.account}/{self.database}/{self.table}"


@dataclass(frozen=True)
class ResumePosition:
    """
    Binlog file name and byte offset of the last durably queued mutation.

    An empty ``log_file`` means "start from the beginning of the stream".
    """
    log_file: str
    offset: int

    START: ClassVar["ResumePosition"]

    @property
    def is_start(self) -> bool:
        return self.log_file == ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.log_file, "pos": self.offset}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResumePosition":
        return cls(log_file=str(data.get("name") or ""), offset=int(data.get("pos") or 0))

    def __str__(self) -> str:
        if self.is_start:
            return "<start>"
        return f"{self.log_file}:{self.offset}"


ResumePosition.START = ResumePosition(log_file="", offset=0)


def _encode_value(value: Any) -> Any:
    # Called by json.dumps for anything it cannot encode natively.
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (decimal.Decimal, datetime.timedelta)):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass
class ChangeRecord:
    """
    One captured row mutation.

    ``rows`` holds the after-image for inserts, the before-image for deletes,
    and the before-image followed by the after-image for updates.
    """
    action: ChangeAction
    table: str
    columns: list[str]
    rows: list[Any]
    primary_key: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.action, ChangeAction):
            try:
                self.action = ChangeAction(self.action)
            except ValueError:
                raise SerializationError(f"Unknown action {self.action!r}") from None
        if not self.columns:
            raise SerializationError(f"Change record for {self.table!r} has no columns")

        images = 2 if self.action == ChangeAction.UPDATE else 1
        expected = images * len(self.columns)
        if len(self.rows) != expected:
            raise SerializationError(
                f"{self.action.value} on {self.table!r} carries {len(self.rows)} values, "
                f"expected {expected} for {len(self.columns)} columns"
            )

        unknown = [c for c in self.primary_key if c not in self.columns]
        if unknown:
            raise SerializationError(
                f"Primary key columns {unknown} of {self.table!r} are not in its column list"
            )

    @property
    def table_name(self) -> str:
        """Unqualified table name."""
        return self.table.rsplit(".", 1)[-1]

    @property
    def old_values(self) -> list[Any]:
        if self.action == ChangeAction.INSERT:
            return []
        return list(self.rows[: len(self.columns)])

    @property
    def new_values(self) -> list[Any]:
        if self.action == ChangeAction.DELETE:
            return []
        return list(self.rows[-len(self.columns):])

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "table_name": self.table,
            "columns": list(self.columns),
            "rows": list(self.rows),
            "primary_key": list(self.primary_key),
        }

    def to_bytes(self) -> bytes:
        """Serialize to one newline-terminated JSON line."""
        try:
            text = json.dumps(
                self.to_dict(),
                default=_encode_value,
                ensure_ascii=False,
                separators=(",", ":"),
            )
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Cannot serialize change on {self.table!r}: {exc}") from exc
        return text.encode("utf-8") + RECORD_SEPARATOR

    @classmethod
    def from_dict(cls, data: Any) -> "ChangeRecord":
        if not isinstance(data, dict):
            raise SerializationError(f"Change record must be a JSON object, got {type(data).__name__}")
        try:
            return cls(
                action=data["action"],
                table=data["table_name"],
                columns=list(data["columns"]),
                rows=list(data["rows"]),
                primary_key=list(data.get("primary_key") or []),
            )
        except (KeyError, TypeError) as exc:
            raise SerializationError(f"Malformed change record: {exc!r}") from exc

    @classmethod
    def from_bytes(cls, line: bytes | str) -> "ChangeRecord":
        try:
            data = json.loads(line)
        except (UnicodeDecodeError, ValueError) as exc:
            raise SerializationError(f"Invalid change record JSON: {exc}") from exc
        return cls.from_dict(data)


def iter_payload(payload: bytes) -> Sequence[bytes]:
    """Split a drained payload into non-empty record lines."""
    return [line for line in payload.split(RECORD_SEPARATOR) if line.strip()]
