"""File watcher using watchfiles.

This module provides the FileWatcher that invokes a per-target callback
when a watched file or directory changes. Changes are debounced and
followed by a cooldown so that a restart touching its own files does
not trigger another restart.

Raw change notifications come from ``watchfiles.awatch`` (native OS
notification, never polling). They are handed over a memory stream to a
single dispatcher task, which owns all debounce and cooldown state.
"""

import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import final

import anyio
import anyio.abc
from structlog.typing import FilteringBoundLogger
from watchfiles import Change, awatch

from arc.exceptions import WatcherSetupError
from arc.utils import default_logger

from ._debounce import Debouncer

ChangeCallback = Callable[[], Awaitable[None]]

# watchfiles' own batching; the real debounce happens in the dispatcher.
_RAW_DEBOUNCE_MS = 50
_RAW_STEP_MS = 10
_RETRY_INSTALL_DELAY = 0.5


@dataclass(frozen=True, slots=True)
class WatchTarget:
    """A path to watch and what to do when it changes.

    Attributes:
        path: The file or directory.
        on_change: Coroutine function invoked after a debounced change.
        is_directory: Whether changes anywhere below `path` count.
    """

    path: Path
    on_change: ChangeCallback
    is_directory: bool = False


@dataclass(frozen=True, slots=True)
class _Installed:
    """Where a target is currently watched from."""

    index: int
    match_path: Path
    watch_path: Path

    @property
    def direct(self) -> bool:
        return self.watch_path == self.match_path


@final
class FileWatcher:
    """Watches targets and invokes their callbacks with debounce and cooldown.

    Targets whose path does not exist yet are watched through their parent
    directory and promoted to a direct watch once they appear. Symlinked
    targets are skipped unless `follow_symlinks` is set.
    """

    __slots__ = (
        "_debouncers",
        "_generation",
        "_installed",
        "_logger",
        "_running",
        "_stop_requested",
        "_stopped",
        "cooldown_ms",
        "debounce_ms",
        "follow_symlinks",
        "targets",
    )

    def __init__(
        self,
        targets: Sequence[WatchTarget],
        *,
        debounce_ms: int = 300,
        cooldown_ms: int = 1000,
        follow_symlinks: bool = False,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            targets: Paths to watch with their callbacks.
            debounce_ms: Quiet period after the last event before firing.
            cooldown_ms: Period after firing during which events are ignored.
            follow_symlinks: Whether symlinked targets are watched.
            logger: Logger for watch events.
        """
        self.targets = tuple(
            WatchTarget(t.path.expanduser().absolute(), t.on_change, t.is_directory)
            for t in targets
        )
        self.debounce_ms = debounce_ms
        self.cooldown_ms = cooldown_ms
        self.follow_symlinks = follow_symlinks
        self._logger = (logger or default_logger("watcher")).bind(component="watcher")
        self._debouncers = [
            Debouncer(debounce=debounce_ms / 1000, cooldown=cooldown_ms / 1000)
            for _ in self.targets
        ]
        self._installed: tuple[_Installed, ...] = ()
        self._stopped: anyio.Event | None = None
        self._generation: anyio.Event | None = None
        self._stop_requested = False
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether `run` is active."""
        return self._running

    def _install_target(self, index: int, target: WatchTarget) -> _Installed:
        path = target.path
        if path.is_symlink():
            if not self.follow_symlinks:
                msg = f"Not following symlink: {path}"
                raise WatcherSetupError(msg, path=path)
            path = path.resolve()

        if path.exists():
            return _Installed(index=index, match_path=path, watch_path=path)
        if path.parent.is_dir():
            return _Installed(index=index, match_path=path, watch_path=path.parent)
        msg = f"Neither {path} nor its parent directory exists"
        raise WatcherSetupError(msg, path=path)

    def _plan(self, *, log: bool) -> tuple[_Installed, ...]:
        installed: list[_Installed] = []
        for index, target in enumerate(self.targets):
            try:
                installed.append(self._install_target(index, target))
            except WatcherSetupError as e:
                if log:
                    self._logger.warning(
                        "watch_target_skipped", path=str(e.path), reason=str(e)
                    )
        return tuple(installed)

    async def run(
        self,
        *,
        task_status: anyio.abc.TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Watch until `stop` is called.

        Args:
            task_status: Signalled once the dispatcher is running.
        """
        stopped = self._stopped = anyio.Event()
        if self._stop_requested:
            stopped.set()
        self._running = True
        send, receive = anyio.create_memory_object_stream[Path](math.inf)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._dispatch, receive, tg)
                task_status.started()
                async with send:
                    await self._watch_loop(send, stopped)
                tg.cancel_scope.cancel()
        finally:
            self._running = False

    async def _watch_loop(
        self, send: anyio.abc.ObjectSendStream[Path], stopped: anyio.Event
    ) -> None:
        log_plan = True
        while not stopped.is_set():
            self._installed = self._plan(log=log_plan)
            log_plan = False
            generation = self._generation = anyio.Event()
            watch_paths = sorted({str(i.watch_path) for i in self._installed})
            direct_paths = {i.match_path for i in self._installed if i.direct}

            for item in self._installed:
                self._logger.debug(
                    "watching",
                    path=str(self.targets[item.index].path),
                    via=str(item.watch_path),
                    direct=item.direct,
                )

            if not watch_paths:
                await stopped.wait()
                return

            try:
                async for changes in awatch(
                    *watch_paths,
                    debounce=_RAW_DEBOUNCE_MS,
                    step=_RAW_STEP_MS,
                    stop_event=generation,
                ):
                    reinstall = False
                    for change, raw_path in changes:
                        path = Path(raw_path)
                        await send.send(path)
                        # Editors replace files by rename, which drops a direct watch.
                        reinstall |= change == Change.deleted and path in direct_paths
                    if reinstall or self._plan(log=False) != self._installed:
                        generation.set()
            except FileNotFoundError as e:
                # A watched path vanished between planning and installing.
                self._logger.warning("watch_install_failed", error=str(e))
                with anyio.move_on_after(_RETRY_INSTALL_DELAY):
                    await stopped.wait()

    def _matches(self, item: _Installed, path: Path) -> bool:
        if path == item.match_path:
            return True
        if not self.targets[item.index].is_directory:
            return False
        return path.is_relative_to(item.match_path)

    async def _dispatch(
        self,
        receive: anyio.abc.ObjectReceiveStream[Path],
        tg: anyio.abc.TaskGroup,
    ) -> None:
        async with receive:
            while True:
                path: Path | None = None
                with anyio.move_on_after(self._next_timeout()):
                    try:
                        path = await receive.receive()
                    except anyio.EndOfStream:
                        return

                now = anyio.current_time()
                if path is not None:
                    self._record(path, now)
                for index, debouncer in enumerate(self._debouncers):
                    if debouncer.due(now):
                        debouncer.fire(now)
                        tg.start_soon(self._invoke, self.targets[index])

    def _next_timeout(self) -> float | None:
        deadlines = [
            deadline
            for debouncer in self._debouncers
            if (deadline := debouncer.next_deadline()) is not None
        ]
        if not deadlines:
            return None
        return max(0.0, min(deadlines) - anyio.current_time())

    def _record(self, path: Path, now: float) -> None:
        for item in self._installed:
            if not self._matches(item, path):
                continue
            if self._debouncers[item.index].record(now):
                self._logger.debug(
                    "change_detected", path=str(path), target=str(item.match_path)
                )
            else:
                self._logger.debug("change_ignored_cooldown", path=str(path))

    async def _invoke(self, target: WatchTarget) -> None:
        self._logger.info("watch_triggered", path=str(target.path))
        try:
            await target.on_change()
        except Exception:
            self._logger.exception("watch_callback_failed", path=str(target.path))

    def stop(self) -> None:
        """Stop watching. Pending debounced changes are dropped."""
        self._stop_requested = True
        for event in (self._stopped, self._generation):
            if event is not None:
                event.set()
