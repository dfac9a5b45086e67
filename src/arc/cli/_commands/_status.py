# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Arc status command - lists running instances."""

from pathlib import Path
from typing import Annotated, Literal

import pendulum
from cyclopts import App, Parameter
from rich.table import Table

from arc.supervisor import ProcessDescriptor

from ._shared import DEFAULT_CONFIG_PATH, descriptor_manager, format_json, get_console

OutputFormat = Literal["table", "json"]

app = App(name="status", help="Show running Arc instances.", help_on_error=True)


def _uptime(descriptor: ProcessDescriptor) -> str:
    started = pendulum.instance(descriptor.started_at)
    return started.diff_for_humans(pendulum.now("UTC"), absolute=True)


def build_status_table(descriptors: list[ProcessDescriptor]) -> Table:
    """Render descriptors as a Rich table."""
    table = Table(title="Arc instances")
    table.add_column("Name", style="bold")
    table.add_column("PID", justify="right")
    table.add_column("Port", justify="right")
    table.add_column("Uptime")
    table.add_column("Config")
    for descriptor in descriptors:
        table.add_row(
            descriptor.name,
            str(descriptor.pid),
            str(descriptor.proxy_port),
            _uptime(descriptor),
            str(descriptor.config_path or "-"),
        )
    return table


@app.default
def status(
    *,
    config: Annotated[
        Path, Parameter(name=["--config", "-c"], help="Path to the configuration file")
    ] = DEFAULT_CONFIG_PATH,
    format: Annotated[  # noqa: A002
        OutputFormat, Parameter(name=["--format", "-f"], help="Output format")
    ] = "table",
) -> None:
    """List running instances, removing descriptors of dead ones."""
    console = get_console()
    manager = descriptor_manager(config)
    removed = manager.cleanup_stale()
    descriptors = manager.list_all()

    if format == "json":
        payload = [descriptor.model_dump(mode="json", by_alias=True) for descriptor in descriptors]
        console.print_json(format_json(payload))
        return

    if not descriptors:
        console.print("No running instances")
    else:
        console.print(build_status_table(descriptors))
    if removed:
        names = ", ".join(descriptor.name for descriptor in removed)
        console.print(f"[dim]Removed stale descriptors: {names}[/dim]", highlight=False)
