"""Process supervisor for named child processes.

This module provides the ProcessSupervisor class that spawns, verifies,
stops and restarts named OS processes, each in its own process group.
"""

import os
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO, final

import anyio
import anyio.abc
import pendulum
from structlog.typing import FilteringBoundLogger

from arc.exceptions import ProcessStartupError, ProcessStopError
from arc.utils import default_logger

from ._models import ProcessRecord, ProcessState, ProcessType

_LOG_TAIL_LINES = 10


def _get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return pendulum.now("UTC").to_iso8601_string()


def read_log_tail(
    path: Path, *, offset: int = 0, lines: int = _LOG_TAIL_LINES
) -> tuple[str, ...]:
    """Read the last lines of a log file.

    Args:
        path: The log file.
        offset: Byte offset to start reading from.
        lines: Maximum number of lines returned.

    Returns:
        The trailing non-empty lines, oldest first. Empty if unreadable.
    """
    try:
        with path.open("rb") as f:
            _ = f.seek(offset)
            data = f.read()
    except OSError:
        return ()
    text = data.decode("utf-8", errors="replace")
    tail = [line for line in text.splitlines() if line.strip()]
    return tuple(tail[-lines:])


@dataclass(frozen=True, slots=True)
class _LaunchSpec:
    command: tuple[str, ...]
    cwd: Path
    env: Mapping[str, str]
    process_type: ProcessType


@dataclass(slots=True)
class _ManagedProcess:
    record: ProcessRecord
    process: anyio.abc.Process
    log_file: IO[bytes]

    def is_alive(self) -> bool:
        return self.process.returncode is None


@final
class ProcessSupervisor:
    """Owns the lifecycle of named child processes.

    Every process is spawned into its own session (and so its own process
    group), with stdout and stderr appended to ``<log_dir>/<name>.log``.
    A spawn only counts as started once the process is still alive after
    `startup_grace` seconds.

    Operations on one name are serialized by a per-name lock, so a
    single-site restart is safe alongside a broader `stop_all`.
    """

    __slots__ = (
        "_exited",
        "_launch_specs",
        "_locks",
        "_logger",
        "_processes",
        "_states",
        "log_dir",
        "restart_delay",
        "shutdown_timeout",
        "startup_grace",
    )

    def __init__(
        self,
        log_dir: Path,
        *,
        logger: FilteringBoundLogger | None = None,
        startup_grace: float = 0.5,
        restart_delay: float = 0.5,
        shutdown_timeout: float = 5.0,
    ) -> None:
        """Initialize the supervisor.

        Args:
            log_dir: Directory receiving per-process log files.
            logger: Logger for lifecycle events.
            startup_grace: Seconds to wait before re-checking liveness.
            restart_delay: Seconds between stop and start on restart.
            shutdown_timeout: Seconds to wait after SIGTERM before SIGKILL.
        """
        self.log_dir = log_dir
        self.startup_grace = startup_grace
        self.restart_delay = restart_delay
        self.shutdown_timeout = shutdown_timeout
        self._logger = (logger or default_logger("supervisor")).bind(component="supervisor")
        self._processes: dict[str, _ManagedProcess] = {}
        # Pruned entries whose process handles still need closing.
        self._exited: dict[str, _ManagedProcess] = {}
        self._launch_specs: dict[str, _LaunchSpec] = {}
        self._states: dict[str, ProcessState] = {}
        self._locks: dict[str, anyio.Lock] = {}

    def _lock_for(self, name: str) -> anyio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = anyio.Lock()
        return lock

    def log_path_for(self, name: str) -> Path:
        """Return the log file used by the named process."""
        return self.log_dir / f"{name}.log"

    async def start(
        self,
        name: str,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        process_type: ProcessType = ProcessType.SERVICE,
    ) -> int:
        """Spawn a named process and verify it stays alive.

        A process already running under the same name is stopped first.

        Args:
            name: Unique name to supervise the process under.
            command: Program and arguments.
            cwd: Working directory.
            env: Variables merged over the current environment.
            process_type: What the process is for.

        Returns:
            The PID of the new process.

        Raises:
            ProcessStartupError: If the log cannot be opened, the program
                cannot be spawned, or it exits within the startup grace.
        """
        spec = _LaunchSpec(
            command=tuple(command),
            cwd=cwd,
            env=dict(env or {}),
            process_type=process_type,
        )
        async with self._lock_for(name):
            return await self._start_locked(name, spec)

    async def _start_locked(self, name: str, spec: _LaunchSpec) -> int:
        await self._reap(name)
        if name in self._processes:
            await self._stop_locked(name)

        self._states[name] = ProcessState.STARTING
        log_path = self.log_path_for(name)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = log_path.open("ab")
        except OSError as e:
            _ = self._states.pop(name, None)
            msg = f"Failed to open log file for '{name}': {log_path}: {e}"
            raise ProcessStartupError(
                msg, service_name=name, log_path=log_path, cause=e
            ) from e

        offset = log_file.tell()
        try:
            process = await anyio.open_process(
                list(spec.command),
                cwd=spec.cwd,
                env={**os.environ, **spec.env},
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            log_file.close()
            self._states[name] = ProcessState.CRASHED
            msg = f"Failed to start '{name}': {e}"
            raise ProcessStartupError(
                msg, service_name=name, log_path=log_path, cause=e
            ) from e

        with anyio.move_on_after(self.startup_grace):
            _ = await process.wait()

        if process.returncode is not None:
            log_file.close()
            await process.aclose()
            self._states[name] = ProcessState.CRASHED
            tail = read_log_tail(log_path, offset=offset)
            self._logger.error(
                "process_crashed_on_startup",
                name=name,
                exit_code=process.returncode,
                log_path=str(log_path),
                log_tail=list(tail),
            )
            msg = f"Process '{name}' exited immediately with code {process.returncode}"
            if tail:
                msg = f"{msg}:\n" + "\n".join(tail)
            raise ProcessStartupError(
                msg,
                service_name=name,
                exit_code=process.returncode,
                log_path=log_path,
                log_tail=tail,
            )

        record = ProcessRecord(
            pid=process.pid,
            name=name,
            type=spec.process_type,
            started_at=_get_timestamp(),
            uses_process_group=_leads_process_group(process.pid),
            log_path=log_path,
        )
        self._processes[name] = _ManagedProcess(record=record, process=process, log_file=log_file)
        self._launch_specs[name] = spec
        self._states[name] = ProcessState.RUNNING
        self._logger.info(
            "process_started",
            name=name,
            pid=record.pid,
            type=record.type.value,
            command=list(spec.command),
            process_group=record.uses_process_group,
        )
        return record.pid

    async def stop(self, name: str) -> None:
        """Stop a named process.

        Sends SIGTERM to the process group (or the single PID), waits up to
        `shutdown_timeout` seconds and escalates to SIGKILL. A no-op if
        nothing is tracked under the name.

        Args:
            name: The process name.

        Raises:
            ProcessStopError: If the process cannot be signalled.
        """
        async with self._lock_for(name):
            await self._stop_locked(name)

    async def _stop_locked(self, name: str) -> None:
        await self._reap(name)
        managed = self._processes.get(name)
        if managed is None:
            _ = self._states.pop(name, None)
            return

        self._states[name] = ProcessState.STOPPING
        record = managed.record
        try:
            if managed.is_alive():
                _signal(managed, signal.SIGTERM)
                with anyio.move_on_after(self.shutdown_timeout):
                    _ = await managed.process.wait()

                if managed.is_alive():
                    self._logger.warning(
                        "process_kill_escalated",
                        name=name,
                        pid=record.pid,
                        timeout=self.shutdown_timeout,
                    )
                    _signal(managed, signal.SIGKILL)
                    _ = await managed.process.wait()
            elif record.uses_process_group:
                # The leader is gone but its children may still hold the group.
                _signal(managed, signal.SIGTERM)
        except ProcessLookupError:
            pass
        except OSError as e:
            self._states[name] = ProcessState.RUNNING
            msg = f"Failed to stop '{name}' (pid {record.pid}): {e}"
            raise ProcessStopError(msg, service_name=name, cause=e) from e

        await managed.process.aclose()
        managed.log_file.close()
        del self._processes[name]
        _ = self._states.pop(name, None)
        self._logger.info(
            "process_stopped",
            name=name,
            pid=record.pid,
            exit_code=managed.process.returncode,
        )

    async def restart(
        self,
        name: str,
        command: Sequence[str] | None = None,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Stop, wait `restart_delay` seconds, then start a named process.

        Arguments left as None reuse the values from the previous start.

        Args:
            name: The process name.
            command: Program and arguments.
            cwd: Working directory.
            env: Variables merged over the current environment.

        Returns:
            The PID of the new process.

        Raises:
            ProcessStartupError: If the new process fails to start, or the
                name was never started and no command is given.
        """
        async with self._lock_for(name):
            previous = self._launch_specs.get(name)
            if previous is None:
                if command is None or cwd is None:
                    msg = f"Cannot restart '{name}': no previous launch to reuse"
                    raise ProcessStartupError(msg, service_name=name)
                previous = _LaunchSpec(
                    command=tuple(command),
                    cwd=cwd,
                    env={},
                    process_type=ProcessType.SERVICE,
                )

            spec = _LaunchSpec(
                command=tuple(command) if command is not None else previous.command,
                cwd=cwd if cwd is not None else previous.cwd,
                env=dict(env) if env is not None else previous.env,
                process_type=previous.process_type,
            )
            self._logger.info("process_restarting", name=name)
            await self._stop_locked(name)
            await anyio.sleep(self.restart_delay)
            return await self._start_locked(name, spec)

    async def stop_all(self) -> None:
        """Stop every tracked process concurrently.

        Stop failures are logged so one stuck process does not keep the
        others running.
        """

        async def stop_one(name: str) -> None:
            try:
                await self.stop(name)
            except ProcessStopError as e:
                self._logger.error("process_stop_failed", name=name, error=str(e))

        async with anyio.create_task_group() as tg:
            for name in {*self._processes, *self._exited}:
                tg.start_soon(stop_one, name)

    def _prune(self) -> None:
        for name, managed in list(self._processes.items()):
            if not managed.is_alive():
                self._logger.warning(
                    "process_exited",
                    name=name,
                    pid=managed.record.pid,
                    exit_code=managed.process.returncode,
                )
                managed.log_file.close()
                self._exited[name] = self._processes.pop(name)
                _ = self._states.pop(name, None)

    async def _reap(self, name: str) -> None:
        exited = self._exited.pop(name, None)
        if exited is not None:
            await exited.process.aclose()

    def get_process(self, name: str) -> ProcessRecord | None:
        """Return the record of a live named process, if any."""
        self._prune()
        managed = self._processes.get(name)
        return managed.record if managed is not None else None

    def get_all_processes(self) -> list[ProcessRecord]:
        """Return the records of all live processes, pruning dead entries."""
        self._prune()
        return [managed.record for managed in self._processes.values()]

    def state(self, name: str) -> ProcessState:
        """Return the lifecycle state of a named process.

        A crashed start reports CRASHED until the next start or stop.
        """
        self._prune()
        return self._states.get(name, ProcessState.ABSENT)

    def is_running(self, name: str) -> bool:
        """Check whether a named process is tracked and alive."""
        return self.get_process(name) is not None


def _leads_process_group(pid: int) -> bool:
    try:
        return os.getpgid(pid) == pid
    except (ProcessLookupError, PermissionError, AttributeError):
        return False


def _signal(managed: _ManagedProcess, signum: signal.Signals) -> None:
    if managed.record.uses_process_group:
        os.killpg(managed.record.pid, signum)
    else:
        managed.process.send_signal(signum)
