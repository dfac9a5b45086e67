"""Top-level Arc runtime.

`ArcRuntime` wires the router, the coordination layer, the health loop
and the file watcher together for one running instance. Watcher
callbacks and signals never act directly: they post commands or set the
shutdown event, and a single task carries the work out in order.
"""

import math
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import final

import anyio
import anyio.abc
import anyio.to_thread
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from structlog.typing import FilteringBoundLogger

from arc.config import ArcConfig, load_config
from arc.exceptions import ArcError, ConfigurationError, SupervisorError
from arc.health import HealthMonitor
from arc.server import ProxyServer
from arc.supervisor import ProcessDescriptor, ProcessDescriptorManager
from arc.utils import default_logger, generate_unique_name, sanitize_name
from arc.watch import ChangeCallback, FileWatcher, WatchTarget

from ._state import SharedState

ConfigLoader = Callable[[Path], ArcConfig]


class CommandKind(StrEnum):
    """Work the runtime's command loop can carry out."""

    RELOAD = "reload"
    RESTART_SITE = "restart_site"


@dataclass(frozen=True, slots=True)
class Command:
    """A queued request for the command loop."""

    kind: CommandKind
    site: str | None = None


def build_watch_targets(
    config: ArcConfig,
    *,
    on_reload: ChangeCallback,
    on_restart: Callable[[str], ChangeCallback],
    on_static: Callable[[str], ChangeCallback],
) -> list[WatchTarget]:
    """Build the watch targets for a configuration.

    The configuration file reloads everything. A service's executable and
    its watch targets restart that service only. A static site's watch
    targets are only reported, since its files are served live.

    Args:
        config: The configuration to watch for.
        on_reload: Callback for configuration file changes.
        on_restart: Factory of per-service restart callbacks.
        on_static: Factory of per-static-site callbacks.

    Returns:
        The targets, possibly empty.
    """
    targets: list[WatchTarget] = []
    if config.watch.watch_config and config.config_path is not None:
        targets.append(WatchTarget(config.config_path, on_reload))

    for site in config.service_sites:
        callback = on_restart(site.name)
        if site.process.executable is not None:
            targets.append(WatchTarget(Path(config.program_for(site)), callback))
        for target in site.watch_targets:
            path = config.resolve_path(target)
            targets.append(WatchTarget(path, callback, is_directory=path.is_dir()))

    for site in config.static_sites:
        callback = on_static(site.name)
        for target in site.watch_targets:
            path = config.resolve_path(target)
            targets.append(WatchTarget(path, callback, is_directory=path.is_dir()))
    return targets


def instance_name(config: ArcConfig, existing: set[str]) -> str:
    """Pick the instance name: the configured one, sanitized, or a fresh one."""
    if config.process_name:
        return sanitize_name(config.process_name)
    return generate_unique_name(existing)


@final
class ArcRuntime:
    """One running Arc instance.

    `run` binds the proxy, starts every service, registers the instance
    descriptor, and then serves until `request_shutdown` is called or
    SIGINT/SIGTERM arrives. Teardown always runs in this order: file
    watcher, listener, tunnel helper, services, descriptor.
    """

    __slots__ = (
        "_command_send",
        "_config_loader",
        "_descriptor",
        "_handle_signals",
        "_logger",
        "_services_started",
        "_shutdown",
        "_shutdown_requested",
        "_task_group",
        "_watch_scope",
        "_watcher",
        "descriptors",
        "monitor",
        "name",
        "server",
        "state",
    )

    def __init__(  # noqa: PLR0913
        self,
        config: ArcConfig,
        *,
        logger: FilteringBoundLogger | None = None,
        handle_signals: bool = True,
        config_loader: ConfigLoader = load_config,
        startup_grace: float = 0.5,
        restart_delay: float = 0.5,
        shutdown_timeout: float = 5.0,
        sweep_orphans: bool = True,
    ) -> None:
        """Initialize the runtime.

        Args:
            config: The initial configuration.
            logger: Base logger; components bind their own names.
            handle_signals: Install SIGINT/SIGTERM handlers.
            config_loader: Loads the configuration file on reload.
            startup_grace: Seconds a new process must survive.
            restart_delay: Seconds between stop and start on restart.
            shutdown_timeout: Seconds to wait after SIGTERM before SIGKILL.
            sweep_orphans: Kill stray processes holding service ports.
        """
        self._logger = (logger or default_logger("runtime")).bind(component="runtime")
        self.server = ProxyServer(config, logger=logger)
        self.monitor = HealthMonitor(logger=logger)
        self.state = SharedState(
            config,
            server=self.server,
            monitor=self.monitor,
            logger=logger,
            startup_grace=startup_grace,
            restart_delay=restart_delay,
            shutdown_timeout=shutdown_timeout,
            sweep_orphans=sweep_orphans,
        )
        self.descriptors = ProcessDescriptorManager(config.pid_dir)
        self.name = instance_name(config, self.descriptors.names())
        self._handle_signals = handle_signals
        self._config_loader = config_loader
        self._descriptor: ProcessDescriptor | None = None
        self._shutdown: anyio.Event | None = None
        self._shutdown_requested = False
        self._services_started = False
        self._command_send: MemoryObjectSendStream[Command] | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._watcher: FileWatcher | None = None
        self._watch_scope: anyio.CancelScope | None = None

    @property
    def config(self) -> ArcConfig:
        """The configuration currently installed."""
        return self.state.config

    @property
    def descriptor(self) -> ProcessDescriptor | None:
        """The descriptor registered for this instance, if written."""
        return self._descriptor

    @property
    def watcher(self) -> FileWatcher | None:
        """The active file watcher, if any."""
        return self._watcher

    async def run(
        self,
        *,
        task_status: anyio.abc.TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Run until shutdown is requested.

        Args:
            task_status: Signalled once the proxy listens and services
                have been started.

        Raises:
            ConfigurationError: If the proxy port cannot be bound.
            TunnelConfigurationError: If the tunnel is enabled but its
                settings are incomplete.
        """
        shutdown = self._shutdown = anyio.Event()
        if self._shutdown_requested:
            shutdown.set()
        send, receive = anyio.create_memory_object_stream[Command](math.inf)
        self._command_send = send

        failure: ArcError | None = None
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                await self._startup(tg)
            except ArcError as e:
                failure = e
            else:
                tg.start_soon(self._command_loop, receive)
                tg.start_soon(self._health_loop)
                if self._handle_signals:
                    tg.start_soon(self._signal_loop)
                await self._restart_watcher()
                task_status.started()
                await shutdown.wait()
            finally:
                with anyio.CancelScope(shield=True):
                    await self._teardown()
                    send.close()
                tg.cancel_scope.cancel()
        self._task_group = None
        self._command_send = None
        if failure is not None:
            raise failure

    async def _startup(self, tg: anyio.abc.TaskGroup) -> None:
        for stale in self.descriptors.cleanup_stale():
            self._logger.info("stale_descriptor_removed", name=stale.name, pid=stale.pid)

        await self.server.start(tg)
        self._services_started = True
        _ = await self.state.start_all()

        config = self.config
        try:
            self._descriptor = self.descriptors.create(
                self.name,
                pid=os.getpid(),
                proxy_port=self.server.port or config.proxy_port,
                config_path=config.config_path or "",
            )
        except OSError as e:
            self._logger.warning("descriptor_write_failed", name=self.name, error=str(e))
        self._logger.info(
            "arc_started",
            name=self.name,
            port=self.server.port,
            sites=[site.name for site in config.sites],
        )

    async def _teardown(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._watch_scope is not None:
            self._watch_scope.cancel()
            self._watch_scope = None

        await self.server.stop()
        if self._services_started:
            await self.state.stop_tunnel()
            await self.state.stop_all()
            self._services_started = False

        if self._descriptor is not None:
            try:
                self.descriptors.delete(self._descriptor.name)
            except OSError as e:
                self._logger.warning(
                    "descriptor_delete_failed", name=self._descriptor.name, error=str(e)
                )
            self._descriptor = None
        self._logger.info("arc_stopped", name=self.name)

    def request_shutdown(self) -> None:
        """Ask `run` to tear down and return."""
        self._shutdown_requested = True
        if self._shutdown is not None:
            self._shutdown.set()

    def request_reload(self) -> None:
        """Queue a reload from the configuration file."""
        self._post(Command(CommandKind.RELOAD))

    def request_restart(self, site: str) -> None:
        """Queue a restart of one service site."""
        self._post(Command(CommandKind.RESTART_SITE, site))

    def _post(self, command: Command) -> None:
        if self._command_send is None:
            self._logger.debug("command_dropped", command=command.kind.value, site=command.site)
            return
        try:
            self._command_send.send_nowait(command)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._logger.debug("command_dropped", command=command.kind.value, site=command.site)

    async def _signal_loop(self) -> None:
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            async for signum in signals:
                self._logger.info("shutdown_signal", signal=signal.Signals(signum).name)
                self.request_shutdown()
                return

    async def _command_loop(self, receive: MemoryObjectReceiveStream[Command]) -> None:
        async with receive:
            async for command in receive:
                await self._execute(command)

    async def _execute(self, command: Command) -> None:
        if command.kind is CommandKind.RELOAD:
            _ = await self.reload_from_disk()
            return
        if command.site is None:
            return
        try:
            _ = await self.state.restart_site(command.site)
        except SupervisorError as e:
            self._logger.error("site_restart_failed", site=command.site, error=str(e))

    async def reload_from_disk(self) -> bool:
        """Reload the configuration file and apply it.

        An invalid file leaves the running configuration untouched.

        Returns:
            True if a new configuration was applied.
        """
        path = self.config.config_path
        if path is None:
            self._logger.warning("reload_skipped", reason="configuration has no file")
            return False
        try:
            new = await anyio.to_thread.run_sync(self._config_loader, path)
        except ConfigurationError as e:
            self._logger.error("reload_failed", path=str(path), error=str(e))
            return False
        await self.reload(new)
        return True

    async def reload(self, config: ArcConfig) -> None:
        """Apply a new configuration and rebuild the file watcher."""
        if config.proxy_port != self.config.proxy_port:
            self._logger.warning(
                "proxy_port_unchanged",
                configured=config.proxy_port,
                listening=self.server.port,
            )
        _ = await self.state.reload(config)
        self.monitor.clear_history()
        await self._restart_watcher()

    def _restart_callback(self, site: str) -> ChangeCallback:
        async def restart() -> None:
            self.request_restart(site)

        return restart

    def _static_callback(self, site: str) -> ChangeCallback:
        async def report() -> None:
            self._logger.info("static_site_changed", site=site)

        return report

    async def _reload_callback(self) -> None:
        self.request_reload()

    async def _restart_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._watch_scope is not None:
            self._watch_scope.cancel()
            self._watch_scope = None

        config = self.config
        tg = self._task_group
        if tg is None or not config.watch.enabled:
            return
        targets = build_watch_targets(
            config,
            on_reload=self._reload_callback,
            on_restart=self._restart_callback,
            on_static=self._static_callback,
        )
        if not targets:
            return

        watcher = FileWatcher(
            targets,
            debounce_ms=config.watch.debounce_ms,
            cooldown_ms=config.watch.cooldown_ms,
            follow_symlinks=config.watch.follow_symlinks,
            logger=self._logger,
        )
        scope = anyio.CancelScope()
        self._watcher = watcher
        self._watch_scope = scope
        await tg.start(self._run_watcher, watcher, scope)

    @staticmethod
    async def _run_watcher(
        watcher: FileWatcher,
        scope: anyio.CancelScope,
        *,
        task_status: anyio.abc.TaskStatus[None] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        with scope:
            await watcher.run(task_status=task_status)

    async def _health_loop(self) -> None:
        while True:
            await anyio.sleep(self.config.health_check_interval)
            _ = await self.state.check_health()
