# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Arc check command - one round of health probes."""

from functools import partial
from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter
from rich.table import Table

from arc.config import ArcConfig
from arc.health import HealthChecker, HealthMonitor, HealthStatus, HealthSummary

from ._shared import DEFAULT_CONFIG_PATH, ExitCode, get_console, load_config_or_exit

app = App(name="check", help="Probe every configured site once.", help_on_error=True)

_STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.UNHEALTHY: "red",
}


async def run_checks(config: ArcConfig, *, timeout: float) -> HealthSummary:
    """Probe every site and summarize the results."""
    monitor = HealthMonitor()
    for result in await HealthChecker(timeout=timeout).check_all(config):
        monitor.record(result)
    return monitor.summary()


def build_health_table(summary: HealthSummary) -> Table:
    """Render a health summary as a Rich table."""
    style = _STATUS_STYLES[summary.overall_status]
    table = Table(title=f"Health: [{style}]{summary.overall_status.value}[/{style}]")
    table.add_column("Site", style="bold")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Message")
    for site in summary.sites:
        mark = "[green]ok[/green]" if site.healthy else "[red]failed[/red]"
        elapsed = site.average_response_time_ms
        table.add_row(
            site.name,
            mark,
            f"{elapsed:.1f}" if elapsed is not None else "-",
            site.last_message or "",
        )
    return table


@app.default
def check(
    *,
    config: Annotated[
        Path, Parameter(name=["--config", "-c"], help="Path to the configuration file")
    ] = DEFAULT_CONFIG_PATH,
    timeout: Annotated[float, Parameter(help="Seconds allowed per probe")] = 5.0,
) -> None:
    """Check every site once and exit non-zero if any is failing."""
    console = get_console()
    arc_config = load_config_or_exit(config)

    if not arc_config.sites:
        console.print("No sites configured")
        return

    summary = anyio.run(partial(run_checks, arc_config, timeout=timeout))
    console.print(build_health_table(summary))
    if any(not site.healthy for site in summary.sites):
        raise SystemExit(ExitCode.UNHEALTHY)
