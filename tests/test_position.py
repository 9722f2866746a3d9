from __future__ import annotations

import json
from pathlib import Path

import pytest

from binrelay.errors import PositionError
from binrelay.models import ResumePosition
from binrelay.position import PositionTracker


def test_load_without_file_starts_from_beginning(tmp_path: Path) -> None:
    tracker = PositionTracker(tmp_path / "repl-binlog_position.json")

    assert tracker.load() == ResumePosition.START


def test_save_then_load(tmp_path: Path) -> None:
    tracker = PositionTracker(tmp_path / "repl-binlog_position.json")

    tracker.save(ResumePosition("mysql-bin.000001", 1200))

    assert tracker.load() == ResumePosition("mysql-bin.000001", 1200)


def test_save_overwrites_previous_position(tmp_path: Path) -> None:
    path = tmp_path / "repl-binlog_position.json"
    tracker = PositionTracker(path)

    tracker.save(ResumePosition("mysql-bin.000001", 1200))
    tracker.save(ResumePosition("mysql-bin.000002", 4))

    assert json.loads(path.read_text()) == {"name": "mysql-bin.000002", "pos": 4}
    # No temporary files are left behind.
    assert [p.name for p in tmp_path.iterdir()] == [path.name]


def test_save_creates_state_directory(tmp_path: Path) -> None:
    tracker = PositionTracker(tmp_path / "state" / "nested" / "pos.json")

    tracker.save(ResumePosition("mysql-bin.000001", 4))

    assert tracker.load().offset == 4


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_corrupt_file_raises(tmp_path: Path, content: str) -> None:
    path = tmp_path / "pos.json"
    path.write_text(content)

    with pytest.raises(PositionError):
        PositionTracker(path).load()
