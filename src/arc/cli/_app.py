"""The command-line interface for Arc."""

from cyclopts import App
from rich.console import Console

from arc import __version__

from ._commands import register_commands

_HELP = "Local development orchestrator: one proxy port, many sites."


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    """Build the `arc` application with every command registered."""
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="arc",
        help=_HELP,
        version=__version__,
        help_on_error=True,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )
    register_commands(app)
    return app


app = create_app()


def main() -> None:
    """Entry point of the `arc` console script."""
    app()


if __name__ == "__main__":
    main()
