# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Arc stop command - signals running instances."""

from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter

from arc.supervisor import ProcessDescriptor, terminate_gracefully

from ._shared import (
    DEFAULT_CONFIG_PATH,
    ExitCode,
    descriptor_manager,
    exit_with_error,
    get_console,
)

app = App(name="stop", help="Stop a running Arc instance.", help_on_error=True)


async def _stop_all(descriptors: list[ProcessDescriptor], timeout: float) -> dict[str, bool]:
    results: dict[str, bool] = {}
    for descriptor in descriptors:
        results[descriptor.name] = await terminate_gracefully(
            descriptor.pid, wait_seconds=timeout
        )
    return results


@app.default
def stop(
    name: Annotated[str | None, Parameter(help="Instance name; all instances if omitted")] = None,
    *,
    config: Annotated[
        Path, Parameter(name=["--config", "-c"], help="Path to the configuration file")
    ] = DEFAULT_CONFIG_PATH,
    timeout: Annotated[
        float, Parameter(help="Seconds to wait after SIGTERM before SIGKILL")
    ] = 10.0,
) -> None:
    """Stop running instances.

    Sends SIGTERM, waits for a clean shutdown and escalates to SIGKILL.
    Descriptors of instances that did not remove their own are deleted.
    """
    console = get_console()
    manager = descriptor_manager(config)
    _ = manager.cleanup_stale()

    if name is not None:
        descriptor = manager.read(name)
        if descriptor is None:
            exit_with_error(f"No running instance named '{name}'", ExitCode.NOT_FOUND)
        targets = [descriptor]
    else:
        targets = manager.list_all()
        if not targets:
            exit_with_error("No running instances", ExitCode.NOT_FOUND)

    results = anyio.run(_stop_all, targets, timeout)

    failed = False
    for descriptor in targets:
        if results[descriptor.name]:
            manager.delete(descriptor.name)
            console.print(
                f"Stopped [bold]{descriptor.name}[/bold] (pid {descriptor.pid})",
                highlight=False,
            )
        else:
            failed = True
            console.print(
                f"[red]Could not stop[/red] {descriptor.name} (pid {descriptor.pid})",
                highlight=False,
            )
    if failed:
        raise SystemExit(ExitCode.INTERNAL_ERROR)
