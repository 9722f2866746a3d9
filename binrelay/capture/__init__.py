from __future__ import annotations

from .events import PositionListener, RowEventHandler, RowMutationEvent
from .normalizer import ChangeNormalizer
from .schema import MySQLSchemaProvider, SchemaProvider, TableSchema
from .source import BinlogSource

__all__ = [
    "BinlogSource",
    "ChangeNormalizer",
    "MySQLSchemaProvider",
    "PositionListener",
    "RowEventHandler",
    "RowMutationEvent",
    "SchemaProvider",
    "TableSchema",
]
