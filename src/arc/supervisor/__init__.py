"""Process supervision for Arc.

This package manages named child processes: spawning them into their
own process groups, verifying they stay alive, stopping them with
escalation, sweeping orphans that hold a service's port, and recording
running Arc instances on disk.

Example:
    >>> supervisor = ProcessSupervisor(Path("logs"))
    >>> pid = await supervisor.start("api", ["./api"], cwd=Path("."))
    >>> await supervisor.restart("api")
    >>> await supervisor.stop_all()
"""

from ._descriptor import ProcessDescriptor, ProcessDescriptorManager
from ._models import ProcessRecord, ProcessState, ProcessType
from ._orphans import (
    GENERIC_RUNNERS,
    is_generic_runner,
    is_process_running,
    kill_port_conflicts,
    pids_for_port,
    pids_matching,
    terminate_gracefully,
    wait_for_port_release,
    with_descendants,
)
from ._supervisor import ProcessSupervisor, read_log_tail

__all__ = [
    "GENERIC_RUNNERS",
    "ProcessDescriptor",
    "ProcessDescriptorManager",
    "ProcessRecord",
    "ProcessState",
    "ProcessSupervisor",
    "ProcessType",
    "is_generic_runner",
    "is_process_running",
    "kill_port_conflicts",
    "pids_for_port",
    "pids_matching",
    "read_log_tail",
    "terminate_gracefully",
    "wait_for_port_release",
    "with_descendants",
]
