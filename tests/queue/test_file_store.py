from __future__ import annotations

from pathlib import Path

import pytest

from binrelay.errors import QueueStoreError
from binrelay.models import TaskIdentity
from binrelay.queue import FileTaskQueueStore


class TestAppend:
    """Tests for append()."""

    def test_append_creates_segment_file(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        path = file_store.segment_path(task)
        assert not path.exists()

        file_store.append(task, b'{"n":1}\n')

        assert path.name == "repl-shop-users.blog"
        assert path.read_bytes() == b'{"n":1}\n'

    def test_append_adds_missing_separator(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        file_store.append(task, b'{"n":1}')
        file_store.append(task, b'{"n":2}')

        assert file_store.segment_path(task).read_bytes() == b'{"n":1}\n{"n":2}\n'

    def test_append_preserves_order(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        for n in range(50):
            file_store.append(task, f'{{"n":{n}}}\n'.encode())

        lines = file_store.drain_and_reset(task).splitlines()

        assert lines == [f'{{"n":{n}}}'.encode() for n in range(50)]

    def test_append_failure_raises_queue_store_error(self, tmp_path: Path, task: TaskIdentity) -> None:
        store = FileTaskQueueStore(tmp_path / "queues")
        # A directory where the segment file should be makes open() fail.
        store.segment_path(task).mkdir()

        with pytest.raises(QueueStoreError):
            store.append(task, b"{}\n")


class TestDrainAndReset:
    """Tests for drain_and_reset()."""

    def test_drain_of_unknown_task_is_empty(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        assert file_store.drain_and_reset(task) == b""
        assert not file_store.segment_path(task).exists()

    def test_drain_returns_everything_and_truncates(
        self, file_store: FileTaskQueueStore, task: TaskIdentity
    ) -> None:
        file_store.append(task, b'{"n":1}\n')
        file_store.append(task, b'{"n":2}\n')

        assert file_store.drain_and_reset(task) == b'{"n":1}\n{"n":2}\n'
        assert file_store.segment_path(task).read_bytes() == b""
        assert file_store.drain_and_reset(task) == b""

    def test_append_after_drain_is_not_lost(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        file_store.append(task, b'{"n":1}\n')
        file_store.drain_and_reset(task)

        file_store.append(task, b'{"n":2}\n')

        assert file_store.drain_and_reset(task) == b'{"n":2}\n'

    def test_drain_picks_up_segment_left_by_previous_process(self, tmp_path: Path, task: TaskIdentity) -> None:
        first = FileTaskQueueStore(tmp_path / "queues")
        first.append(task, b'{"n":1}\n')
        first.close()

        second = FileTaskQueueStore(tmp_path / "queues")
        try:
            assert second.drain_and_reset(task) == b'{"n":1}\n'
        finally:
            second.close()

    def test_tasks_are_isolated(self, file_store: FileTaskQueueStore, task: TaskIdentity) -> None:
        other = TaskIdentity(account="analytics", database="shop", table="users")
        file_store.append(task, b'{"for":"repl"}\n')
        file_store.append(other, b'{"for":"analytics"}\n')

        assert file_store.drain_and_reset(task) == b'{"for":"repl"}\n'
        assert file_store.drain_and_reset(other) == b'{"for":"analytics"}\n'

    def test_tasks_differing_only_in_dash_placement_are_isolated(self, file_store: FileTaskQueueStore) -> None:
        a = TaskIdentity(account="repl-eu", database="shop", table="users")
        b = TaskIdentity(account="repl", database="eu-shop", table="users")
        file_store.append(a, b'{"for":"a"}\n')

        assert file_store.drain_and_reset(b) == b""
        assert file_store.segment_path(a) != file_store.segment_path(b)
        assert file_store.drain_and_reset(a) == b'{"for":"a"}\n'

    def test_store_without_fsync_behaves_the_same(self, tmp_path: Path, task: TaskIdentity) -> None:
        store = FileTaskQueueStore(tmp_path / "queues", fsync=False)
        try:
            store.append(task, b'{"n":1}\n')
            assert store.drain_and_reset(task) == b'{"n":1}\n'
        finally:
            store.close()
