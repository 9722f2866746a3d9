from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from ..models import ChangeAction, ResumePosition


@dataclass(frozen=True)
class RowMutationEvent:
    """
    One changed row as delivered by the replication client.

    Images map column name to value; ``before`` is None for inserts and
    ``after`` is None for deletes.
    """
    action: ChangeAction
    schema: str
    table: str
    before: Optional[Mapping[str, Any]] = None
    after: Optional[Mapping[str, Any]] = None


class RowEventHandler(Protocol):
    def on_row(self, event: RowMutationEvent) -> None:
        """Accept one row mutation, in source commit order."""
        ...


class PositionListener(Protocol):
    def on_position_synced(self, position: ResumePosition) -> None:
        """All row mutations up to ``position`` have been passed to on_row."""
        ...
