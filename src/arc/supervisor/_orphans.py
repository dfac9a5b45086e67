"""Orphan discovery and cleanup.

Configuration reloads and crashes can lose track of a PID while the OS
process survives and keeps its port bound. The helpers here find such
processes by listening port and by program name, and terminate them.
This is a best-effort sweep; every forced kill is logged.
"""

import os
import re
import signal
from collections.abc import Callable, Collection
from pathlib import Path

import anyio
import anyio.to_thread
import psutil
from structlog.typing import FilteringBoundLogger
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from arc.utils import default_logger

# Launchers whose name says nothing about the program they run; matching
# them by name would hit unrelated processes.
GENERIC_RUNNERS: frozenset[str] = frozenset(
    {
        "swift",
        "env",
        "node",
        "npm",
        "npx",
        "python",
        "python3",
        "ruby",
        "bundle",
        "uv",
        "deno",
        "bun",
        "sh",
        "bash",
    }
)

_VERSION_SUFFIX = re.compile(r"(?<=[a-z])[\d.]+$")
_POLL_INTERVAL = 0.1


def is_generic_runner(command: str) -> bool:
    """Check whether a command names a generic language launcher.

    Version suffixes are ignored, so ``python3.12`` counts as ``python``.
    """
    name = Path(command).name.lower()
    if not name:
        return False
    return name in GENERIC_RUNNERS or _VERSION_SUFFIX.sub("", name) in GENERIC_RUNNERS


def is_process_running(pid: int) -> bool:
    """Check whether a PID refers to a live, non-zombie process."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
        return psutil.pid_exists(pid) if pid > 0 else False


def pids_for_port(port: int) -> set[int]:
    """Find the PIDs listening on a TCP port.

    Falls back to scanning processes one by one when the system-wide
    connection table is not readable.
    """
    pids: set[int] = set()
    try:
        for conn in psutil.net_connections(kind="inet"):
            if not conn.laddr or conn.laddr.port != port:
                continue
            if conn.status == psutil.CONN_LISTEN and conn.pid:
                pids.add(conn.pid)
    except (psutil.AccessDenied, PermissionError):
        for proc in psutil.process_iter(["pid"]):
            try:
                for conn in proc.net_connections(kind="inet"):
                    if not conn.laddr or conn.laddr.port != port:
                        continue
                    if conn.status == psutil.CONN_LISTEN:
                        pids.add(proc.pid)
                        break
            except (psutil.NoSuchProcess, psutil.AccessDenied, OSError):
                continue
    return pids


def pids_matching(program: str) -> set[int]:
    """Find the PIDs whose process name or program path matches `program`."""
    name = Path(program).name
    if not name:
        return set()
    pids: set[int] = set()
    for proc in psutil.process_iter(["pid", "name", "cmdline"]):
        try:
            cmdline = proc.info.get("cmdline") or []
            argv0 = Path(cmdline[0]).name if cmdline else ""
            if name in (proc.info.get("name"), argv0):
                pids.add(proc.pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, OSError):
            continue
    return pids


def with_descendants(pids: Collection[int]) -> set[int]:
    """Return `pids` together with every live descendant of them."""
    result = set(pids)
    for pid in pids:
        try:
            result.update(child.pid for child in psutil.Process(pid).children(recursive=True))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return result


def protected_pids() -> set[int]:
    """PIDs that must never be killed by a sweep: this process and its parents."""
    protected = {os.getpid()}
    try:
        protected.update(parent.pid for parent in psutil.Process().parents())
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        protected.add(os.getppid())
    return protected


async def _wait_until(predicate: Callable[[], bool], timeout: float) -> bool:
    """Poll `predicate` until it returns True or `timeout` elapses."""

    async def check() -> bool:
        return await anyio.to_thread.run_sync(predicate)

    retrying = AsyncRetrying(
        retry=retry_if_result(lambda done: not done),
        stop=stop_after_delay(timeout),
        wait=wait_fixed(_POLL_INTERVAL),
        retry_error_callback=lambda _state: False,
    )
    return bool(await retrying(check))


async def terminate_gracefully(
    pid: int,
    *,
    wait_seconds: float = 2.0,
    logger: FilteringBoundLogger | None = None,
) -> bool:
    """Send SIGTERM, wait for exit, then SIGKILL.

    Args:
        pid: The process to terminate.
        wait_seconds: Seconds to wait after SIGTERM.
        logger: Logger for the escalation.

    Returns:
        True if the process is gone afterwards.
    """
    log = logger or default_logger("orphans")
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return True
    except PermissionError as e:
        log.warning("orphan_kill_denied", pid=pid, error=str(e))
        return False

    if await _wait_until(lambda: not is_process_running(pid), wait_seconds):
        return True

    log.warning("orphan_kill_escalated", pid=pid, wait_seconds=wait_seconds)
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        return True
    except PermissionError as e:
        log.warning("orphan_kill_denied", pid=pid, error=str(e))
        return False
    return await _wait_until(lambda: not is_process_running(pid), wait_seconds)


async def wait_for_port_release(port: int, timeout: float = 2.0) -> bool:
    """Wait until nothing listens on `port`.

    Returns:
        True if the port was released within `timeout`.
    """
    return await _wait_until(lambda: not pids_for_port(port), timeout)


async def kill_port_conflicts(
    port: int,
    program: str | None = None,
    *,
    logger: FilteringBoundLogger | None = None,
    wait_seconds: float = 2.0,
    keep: Collection[int] = (),
) -> set[int]:
    """Kill whatever holds `port` and, unless generic, processes named `program`.

    This process, its ancestors and the PIDs in `keep` are never touched.

    Args:
        port: The service port that must be free.
        program: The service's executable or command.
        logger: Logger for forced kills.
        wait_seconds: Grace period per process before SIGKILL.
        keep: PIDs still owned by a supervisor.

    Returns:
        The PIDs that were signalled.
    """
    log = (logger or default_logger("orphans")).bind(component="orphans")

    candidates = await anyio.to_thread.run_sync(pids_for_port, port)
    if program and not is_generic_runner(program):
        candidates |= await anyio.to_thread.run_sync(pids_matching, program)
    candidates -= protected_pids() | set(keep)

    for pid in sorted(candidates):
        log.warning("orphan_killed", pid=pid, port=port, program=program)
        _ = await terminate_gracefully(pid, wait_seconds=wait_seconds, logger=log)

    if candidates and not await wait_for_port_release(port, wait_seconds):
        log.warning("port_still_bound", port=port)
    return candidates
