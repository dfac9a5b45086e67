"""Arc CLI commands."""
# pyright: reportUnusedCallResult=false

from cyclopts import App

from ._check import app as check_app
from ._logs import app as logs_app
from ._run import app as run_app
from ._shared import (
    DEFAULT_CONFIG_PATH,
    ExitCode,
    FormattableData,
    descriptor_manager,
    exit_with_error,
    format_json,
    get_console,
    get_error_console,
    load_config_or_exit,
)
from ._status import app as status_app
from ._stop import app as stop_app

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ExitCode",
    "FormattableData",
    "check_app",
    "descriptor_manager",
    "exit_with_error",
    "format_json",
    "get_console",
    "get_error_console",
    "load_config_or_exit",
    "logs_app",
    "register_commands",
    "run_app",
    "status_app",
    "stop_app",
]


def register_commands(app: App) -> None:
    app.command(check_app)
    app.command(logs_app)
    app.command(run_app)
    app.command(status_app)
    app.command(stop_app)
