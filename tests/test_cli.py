from __future__ import annotations

from pathlib import Path

import pytest

from binrelay import cli
from binrelay.config import CaptureConfig
from binrelay.models import TaskIdentity
from binrelay.queue import FileTaskQueueStore


@pytest.fixture(autouse=True)
def keep_signal_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)


def test_parser_defaults() -> None:
    parser = cli.build_parser()

    capture = parser.parse_args(["capture"])
    replay = parser.parse_args(["--log-level", "debug", "replay", "--metrics-port", "9100"])

    assert (capture.command, capture.config) == ("capture", "serverConfig.json")
    assert (replay.command, replay.config, replay.metrics_port) == ("replay", "clientConfig.json", 9100)
    assert replay.log_level == "debug"


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_file_backend_by_default(tmp_path: Path) -> None:
    config = CaptureConfig(
        db_url="127.0.0.1",
        db_username="repl",
        tasks=[TaskIdentity("repl", "shop", "users")],
        queue_dir=str(tmp_path / "queues"),
    )

    store = cli.make_store(config)
    try:
        assert isinstance(store, FileTaskQueueStore)
        assert store.directory == tmp_path / "queues"
    finally:
        store.close()


@pytest.mark.parametrize("command", ["capture", "replay"])
def test_bad_config_exits_with_error(tmp_path: Path, command: str) -> None:
    missing = tmp_path / "missing.json"

    assert cli.main([command, "--config", str(missing)]) == 1


def test_replay_config_without_target_exits_with_error(tmp_path: Path) -> None:
    path = tmp_path / "clientConfig.json"
    path.write_text('[{"taskAccount": "repl", "taskDB": "shop", "taskTable": "users"}]')

    assert cli.main(["replay", "--config", str(path)]) == 1
