from __future__ import annotations

from .engine import ReplayEngine, ReplayStats
from .statements import Statement, build_statement, validate_identifier

__all__ = [
    "ReplayEngine",
    "ReplayStats",
    "Statement",
    "build_statement",
    "validate_identifier",
]
