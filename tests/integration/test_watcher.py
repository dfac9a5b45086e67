from pathlib import Path

import anyio
import pytest

from arc.watch import FileWatcher, WatchTarget

# Time for the native watch to be installed after `run` reports started.
SETTLE = 0.5


class Counter:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1

    async def wait_for(self, calls: int, timeout: float = 5.0) -> None:
        with anyio.fail_after(timeout):
            while self.calls < calls:
                await anyio.sleep(0.05)


@pytest.mark.anyio
class TestFileWatcher:
    async def test_burst_fires_once(self, tmp_path: Path) -> None:
        target = tmp_path / "app.bin"
        _ = target.write_text("0")
        counter = Counter()
        watcher = FileWatcher([WatchTarget(target, counter)], debounce_ms=200, cooldown_ms=200)

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            assert watcher.is_running
            await anyio.sleep(SETTLE)
            for index in range(5):
                _ = target.write_text(str(index))
                await anyio.sleep(0.02)
            await counter.wait_for(1)
            await anyio.sleep(0.6)
            watcher.stop()

        assert counter.calls == 1
        assert not watcher.is_running

    async def test_changes_during_cooldown_are_ignored(self, tmp_path: Path) -> None:
        target = tmp_path / "app.bin"
        _ = target.write_text("0")
        counter = Counter()
        watcher = FileWatcher([WatchTarget(target, counter)], debounce_ms=50, cooldown_ms=2000)

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            await anyio.sleep(SETTLE)
            _ = target.write_text("1")
            await counter.wait_for(1)
            _ = target.write_text("2")
            await anyio.sleep(0.5)
            watcher.stop()

        assert counter.calls == 1

    async def test_missing_file_is_watched_through_parent(self, tmp_path: Path) -> None:
        target = tmp_path / "later.txt"
        counter = Counter()
        watcher = FileWatcher([WatchTarget(target, counter)], debounce_ms=50, cooldown_ms=0)

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            await anyio.sleep(SETTLE)
            _ = target.write_text("hello")
            await counter.wait_for(1)
            watcher.stop()

        assert counter.calls >= 1

    async def test_directory_target_sees_nested_changes(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        (src / "pkg").mkdir(parents=True)
        counter = Counter()
        unrelated = Counter()
        watcher = FileWatcher(
            [
                WatchTarget(src, counter, is_directory=True),
                WatchTarget(tmp_path / "other.txt", unrelated),
            ],
            debounce_ms=50,
            cooldown_ms=0,
        )

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            await anyio.sleep(SETTLE)
            _ = (src / "pkg" / "mod.py").write_text("x = 1")
            await counter.wait_for(1)
            watcher.stop()

        assert unrelated.calls == 0

    async def test_callback_errors_do_not_stop_watching(self, tmp_path: Path) -> None:
        target = tmp_path / "app.bin"
        _ = target.write_text("0")
        counter = Counter()

        async def failing() -> None:
            await counter()
            raise RuntimeError("callback failed")

        watcher = FileWatcher([WatchTarget(target, failing)], debounce_ms=50, cooldown_ms=0)

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            await anyio.sleep(SETTLE)
            _ = target.write_text("1")
            await counter.wait_for(1)
            await anyio.sleep(0.2)
            _ = target.write_text("2")
            await counter.wait_for(2)
            watcher.stop()

        assert counter.calls >= 2

    async def test_unwatchable_targets_are_skipped(self, tmp_path: Path) -> None:
        watcher = FileWatcher([WatchTarget(tmp_path / "no" / "such" / "file", Counter())])

        async with anyio.create_task_group() as tg:
            await tg.start(watcher.run)
            watcher.stop()

        assert not watcher.is_running

    async def test_stop_before_run_returns_immediately(self, tmp_path: Path) -> None:
        watcher = FileWatcher([WatchTarget(tmp_path, Counter(), is_directory=True)])
        watcher.stop()

        with anyio.fail_after(5):
            await watcher.run()
