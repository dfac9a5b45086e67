"""Data models for the process supervisor.

This module defines the core data types for process management:
- ProcessType: What a supervised process is for
- ProcessState: Lifecycle states for a named process
- ProcessRecord: Immutable record of a live process
"""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations


class ProcessType(StrEnum):
    """Kinds of supervised processes."""

    SERVICE = "service"
    TUNNEL_HELPER = "tunnel_helper"


class ProcessState(StrEnum):
    """Lifecycle states of a named process.

    - ABSENT: Nothing is tracked under the name
    - STARTING: Spawned, waiting for the liveness re-check
    - RUNNING: Passed the liveness re-check and still alive
    - STOPPING: Termination requested, waiting for exit
    - CRASHED: Exited during startup; never registered
    """

    ABSENT = "absent"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    CRASHED = "crashed"


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """A live process owned by the supervisor.

    Created on a successful spawn, dropped on stop or detected death.

    Attributes:
        pid: Operating system process ID.
        name: Unique name the process is supervised under.
        type: What the process is for.
        started_at: ISO 8601 formatted spawn time.
        uses_process_group: Whether the process leads its own process
            group, so stopping it signals the whole group.
        log_path: File receiving the process's stdout and stderr.
    """

    pid: int
    name: str
    type: ProcessType
    started_at: str
    uses_process_group: bool
    log_path: Path | None = None
