# pyright: reportExplicitAny=false
"""Helpers shared by the Arc commands.

Commands run outside any Arc instance: they load the configuration only
to find the log directory and the descriptor store, and talk to running
instances through descriptors and signals.
"""

from enum import IntEnum
from pathlib import Path
from typing import Any, Never

from rich.console import Console
from rich.markup import escape

from arc.config import ArcConfig, load_config
from arc.exceptions import ConfigurationError
from arc.supervisor import ProcessDescriptorManager

# JSON payloads are plain dicts from `model_dump`.
FormattableData = dict[str, Any]

DEFAULT_CONFIG_PATH = Path("arc.toml")

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ExitCode",
    "FormattableData",
    "descriptor_manager",
    "exit_with_error",
    "format_json",
    "get_console",
    "get_error_console",
    "load_config_or_exit",
]


class ExitCode(IntEnum):
    """Process exit codes of the `arc` commands."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    STARTUP_ERROR = 2
    NOT_FOUND = 3
    UNHEALTHY = 4
    INTERNAL_ERROR = 5


def format_json(data: FormattableData | list[FormattableData], *, indent: bool = True) -> str:
    """Serialize command output as JSON.

    Args:
        data: A payload or a list of payloads.
        indent: Pretty-print with two-space indentation.

    Returns:
        The JSON text.
    """
    import orjson

    options = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=options).decode("utf-8")


def get_console() -> Console:
    """Console for regular command output (stdout)."""
    return Console()


def get_error_console() -> Console:
    """Console for diagnostics (stderr)."""
    return Console(stderr=True)


def exit_with_error(
    message: str,
    code: ExitCode = ExitCode.INTERNAL_ERROR,
    *,
    console: Console | None = None,
) -> Never:
    """Print `message` to stderr and exit with `code`.

    Raises:
        SystemExit: Always.
    """
    (console or get_error_console()).print(f"[red]Error:[/red] {escape(message)}", highlight=False)
    raise SystemExit(code)


def load_config_or_exit(path: Path, *, console: Console | None = None) -> ArcConfig:
    """Load a configuration file, exiting with CONFIG_ERROR if it is invalid."""
    try:
        return load_config(path)
    except ConfigurationError as e:
        exit_with_error(str(e), ExitCode.CONFIG_ERROR, console=console)


def descriptor_manager(config_path: Path) -> ProcessDescriptorManager:
    """Open the descriptor store belonging to a configuration file.

    The store lives in ``<base_dir>/.pid``. When the configuration cannot
    be loaded, the directory of `config_path` is used as the base, so
    `status` and `stop` keep working after the file was broken or removed.
    """
    try:
        return ProcessDescriptorManager(load_config(config_path).pid_dir)
    except ConfigurationError:
        return ProcessDescriptorManager(config_path.absolute().parent / ".pid")
