# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Arc logs command - prints the tail of a service log."""

from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from arc.supervisor import read_log_tail

from ._shared import (
    DEFAULT_CONFIG_PATH,
    ExitCode,
    exit_with_error,
    get_console,
    load_config_or_exit,
)

app = App(name="logs", help="Show the log of a supervised process.", help_on_error=True)


@app.default
def logs(
    name: Annotated[str, Parameter(help="Site or tunnel process name")],
    *,
    config: Annotated[
        Path, Parameter(name=["--config", "-c"], help="Path to the configuration file")
    ] = DEFAULT_CONFIG_PATH,
    lines: Annotated[int, Parameter(name=["--lines", "-n"], help="Lines to show")] = 50,
) -> None:
    """Print the last lines of a process log."""
    arc_config = load_config_or_exit(config)

    path = arc_config.log_path / f"{name}.log"
    if not path.is_file():
        exit_with_error(f"No log for '{name}' at {path}", ExitCode.NOT_FOUND)

    console = get_console()
    for line in read_log_tail(path, lines=lines):
        console.print(line, markup=False, highlight=False)
