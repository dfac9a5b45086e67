# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""Arc run command - serves every site until interrupted."""

from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter

from arc.config import ArcConfig
from arc.exceptions import (
    ConfigurationError,
    ProcessStartupError,
    SupervisorError,
    TunnelConfigurationError,
)
from arc.state import ArcRuntime
from arc.utils import create_logger

from ._shared import (
    DEFAULT_CONFIG_PATH,
    ExitCode,
    exit_with_error,
    get_error_console,
    load_config_or_exit,
)

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 3

app = App(
    name="run",
    help="Start the proxy and every configured service in the foreground.",
    help_on_error=True,
)


def _without_watch(config: ArcConfig) -> ArcConfig:
    watch = config.watch.model_copy(update={"enabled": False})
    return config.model_copy(update={"watch": watch})


def _startup_failure(error: SupervisorError) -> str:
    # The message already carries the log tail.
    message = str(error)
    if isinstance(error, ProcessStartupError) and error.log_path is not None:
        message = f"{message}\nFull log: {error.log_path}"
    return message


@app.default
def run(
    *,
    config: Annotated[
        Path, Parameter(name=["--config", "-c"], help="Path to the configuration file")
    ] = DEFAULT_CONFIG_PATH,
    no_watch: Annotated[
        bool, Parameter(name="--no-watch", help="Disable file watching")
    ] = False,
    log_level: Annotated[
        str | None, Parameter(name="--log-level", help="Override the log level")
    ] = None,
) -> None:
    """Run Arc in the foreground.

    Binds the proxy port, starts every service and the tunnel helper,
    and watches for changes until SIGINT or SIGTERM.
    """
    console = get_error_console()
    arc_config = load_config_or_exit(config, console=console)

    if no_watch:
        arc_config = _without_watch(arc_config)

    log_settings = arc_config.logging
    log_file = str(arc_config.resolve_path(log_settings.file)) if log_settings.file else ""
    logger = create_logger(
        level=log_level or log_settings.level.value,
        log_format=log_settings.format.value,  # type: ignore[arg-type]
        log_file=log_file,
        max_bytes=LOG_FILE_MAX_BYTES,
        backup_count=LOG_FILE_BACKUPS,
    )

    runtime = ArcRuntime(arc_config, logger=logger)
    console.print(
        f"Starting [bold]{runtime.name}[/bold] on "
        f"http://{arc_config.proxy_host}:{arc_config.proxy_port}",
        highlight=False,
    )
    for site in arc_config.sites:
        console.print(f"  {site.kind:<8} {site.name}  ->  {site.domain}", highlight=False)

    try:
        anyio.run(runtime.run)
    except ConfigurationError as e:
        exit_with_error(str(e), ExitCode.CONFIG_ERROR, console=console)
    except TunnelConfigurationError as e:
        message = f"{e}\n{e.hint}" if e.hint else str(e)
        exit_with_error(message, ExitCode.STARTUP_ERROR, console=console)
    except SupervisorError as e:
        exit_with_error(_startup_failure(e), ExitCode.STARTUP_ERROR, console=console)
    console.print(f"Stopped [bold]{runtime.name}[/bold]", highlight=False)
