"""Coordination layer owning the configuration and the process supervisor.

`SharedState` is the single place where the running configuration is
swapped and where services and the tunnel helper are started and
stopped. Every mutating operation holds one lock, so a reload and a
per-site restart never interleave their stop and start phases.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import final

import anyio
from structlog.typing import FilteringBoundLogger

from arc.config import ArcConfig, ServiceSite
from arc.exceptions import (
    ProcessNotFoundError,
    ProcessStartupError,
    TunnelConfigurationError,
)
from arc.health import HealthChecker, HealthCheckResult, HealthMonitor, HealthSummary
from arc.server import ProxyServer
from arc.supervisor import (
    ProcessRecord,
    ProcessSupervisor,
    ProcessType,
    kill_port_conflicts,
    with_descendants,
)
from arc.utils import default_logger


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Read-only view of the running system.

    Attributes:
        processes: Live supervised processes.
        health: Current health summary.
        config_path: File the configuration was loaded from, if any.
        proxy_port: Configured proxy port.
    """

    processes: tuple[ProcessRecord, ...]
    health: HealthSummary
    config_path: Path | None
    proxy_port: int


@dataclass(frozen=True, slots=True)
class TunnelLaunch:
    """How the tunnel helper is spawned."""

    name: str
    command: tuple[str, ...]
    env: dict[str, str]
    url: str


def tunnel_launch(config: ArcConfig) -> TunnelLaunch:
    """Validate the tunnel settings and build the helper launch.

    Args:
        config: Configuration with an enabled tunnel section.

    Returns:
        The helper name, command line and extra environment.

    Raises:
        TunnelConfigurationError: If the tunnel is disabled, has no
            identifier, its executable cannot be found, or its
            credentials file does not exist.
    """
    tunnel = config.tunnel
    if tunnel is None or not tunnel.enabled:
        msg = "Tunnel is not enabled"
        raise TunnelConfigurationError(msg, reason="not_enabled")

    if not tunnel.identifier or not tunnel.identifier.strip():
        msg = "Tunnel identifier is required when the tunnel is enabled"
        raise TunnelConfigurationError(
            msg,
            reason="identifier_required",
            hint="Set tunnel.identifier to the tunnel name or UUID",
        )

    executable = tunnel.executable_path
    resolved = shutil.which(executable)
    if resolved is None and ("/" in executable or executable.startswith("~")):
        candidate = config.resolve_path(executable)
        if candidate.is_file():
            resolved = str(candidate)
    if resolved is None:
        msg = f"Tunnel executable not found: {executable}"
        raise TunnelConfigurationError(
            msg,
            reason="executable_not_found",
            hint="Install the tunnel helper or set tunnel.executable_path",
        )

    credentials = tunnel.resolved_credentials_path()
    if credentials is not None and not credentials.is_absolute():
        credentials = config.resolve_path(credentials)
    if credentials is None or not credentials.is_file():
        msg = f"Tunnel credentials file not found: {credentials}"
        raise TunnelConfigurationError(
            msg,
            reason="credentials_not_found",
            hint="Create the tunnel credentials or set tunnel.credentials_path",
        )

    url = f"http://127.0.0.1:{tunnel.port or config.proxy_port}"
    return TunnelLaunch(
        name=tunnel.process_name,
        command=(resolved, *tunnel.command_args()),
        env={"TUNNEL_URL": url},
        url=url,
    )


@final
class SharedState:
    """Owns the current configuration, the supervisor and the tunnel helper.

    The supervisor is rebuilt for every configuration, because its log
    directory and timings belong to that configuration. The router and
    health monitor are shared and only told about the new configuration.
    """

    __slots__ = (
        "_checker",
        "_config",
        "_lock",
        "_logger",
        "_supervisor",
        "monitor",
        "restart_delay",
        "server",
        "shutdown_timeout",
        "startup_grace",
        "sweep_orphans",
    )

    def __init__(  # noqa: PLR0913
        self,
        config: ArcConfig,
        *,
        server: ProxyServer | None = None,
        monitor: HealthMonitor | None = None,
        logger: FilteringBoundLogger | None = None,
        startup_grace: float = 0.5,
        restart_delay: float = 0.5,
        shutdown_timeout: float = 5.0,
        sweep_orphans: bool = True,
    ) -> None:
        """Initialize the state.

        Args:
            config: The initial configuration.
            server: Router told about configuration changes.
            monitor: Health monitor receiving probe results.
            logger: Logger for coordination events.
            startup_grace: Seconds a new process must survive.
            restart_delay: Seconds between stop and start on restart.
            shutdown_timeout: Seconds to wait after SIGTERM before SIGKILL.
            sweep_orphans: Kill stray processes holding service ports.
        """
        self._logger = (logger or default_logger("state")).bind(component="state")
        self.server = server
        self.monitor = monitor or HealthMonitor(logger=self._logger)
        self.startup_grace = startup_grace
        self.restart_delay = restart_delay
        self.shutdown_timeout = shutdown_timeout
        self.sweep_orphans = sweep_orphans
        self._config = config
        self._supervisor = self._new_supervisor(config)
        self._checker = HealthChecker()
        self._lock: anyio.Lock | None = None

    @property
    def config(self) -> ArcConfig:
        """The configuration currently installed."""
        return self._config

    @property
    def supervisor(self) -> ProcessSupervisor:
        """The supervisor of the current configuration."""
        return self._supervisor

    def _mutex(self) -> anyio.Lock:
        if self._lock is None:
            self._lock = anyio.Lock()
        return self._lock

    def _new_supervisor(self, config: ArcConfig) -> ProcessSupervisor:
        return ProcessSupervisor(
            config.log_path,
            logger=self._logger,
            startup_grace=self.startup_grace,
            restart_delay=self.restart_delay,
            shutdown_timeout=self.shutdown_timeout,
        )

    def _owned_pids(self) -> set[int]:
        return with_descendants(
            [record.pid for record in self._supervisor.get_all_processes()]
        )

    async def _sweep(self, site: ServiceSite) -> None:
        if not self.sweep_orphans:
            return
        _ = await kill_port_conflicts(
            site.port,
            self._config.program_for(site),
            logger=self._logger,
            keep=self._owned_pids(),
        )

    def _launch_args(self, site: ServiceSite) -> tuple[list[str], Path, dict[str, str]]:
        config = self._config
        command = [config.program_for(site), *site.process.args]
        env = {**site.process.env, "PORT": str(site.port)}
        return command, config.working_dir_for(site), env

    async def _start_service(self, site: ServiceSite) -> int:
        await self._sweep(site)
        command, cwd, env = self._launch_args(site)
        return await self._supervisor.start(site.name, command, cwd=cwd, env=env)

    async def _start_services(self) -> dict[str, ProcessStartupError]:
        failures: dict[str, ProcessStartupError] = {}
        for site in self._config.service_sites:
            try:
                _ = await self._start_service(site)
            except ProcessStartupError as e:
                failures[site.name] = e
                self._logger.error(
                    "service_start_failed",
                    site=site.name,
                    error=str(e),
                    log_path=str(e.log_path) if e.log_path else None,
                )
        return failures

    async def start_all(self, config: ArcConfig | None = None) -> dict[str, ProcessStartupError]:
        """Start every service and, if enabled, the tunnel helper.

        A service that fails to start does not prevent the others from
        starting; its error is returned instead.

        Args:
            config: Configuration to install first; the current one if None.

        Returns:
            Startup errors keyed by site name.

        Raises:
            TunnelConfigurationError: If the tunnel is enabled but cannot
                be started from its settings.
        """
        async with self._mutex():
            if config is not None:
                self._install(config)
            failures = await self._start_services()
            if self._config.tunnel_enabled:
                await self._start_tunnel()
            self._logger.info(
                "services_started",
                started=len(self._config.service_sites) - len(failures),
                failed=sorted(failures),
            )
            return failures

    def _install(self, config: ArcConfig) -> None:
        self._config = config
        if self.server is not None:
            self.server.reload(config)

    async def stop_all(self) -> None:
        """Stop the tunnel helper and every service, then sweep their ports."""
        async with self._mutex():
            await self._stop_everything(self._config)

    async def _stop_everything(self, config: ArcConfig) -> None:
        await self._stop_tunnel()
        await self._supervisor.stop_all()
        if not self.sweep_orphans:
            return
        for site in config.service_sites:
            _ = await kill_port_conflicts(
                site.port, config.program_for(site), logger=self._logger
            )

    async def reload(self, config: ArcConfig) -> dict[str, ProcessStartupError]:
        """Replace the running configuration.

        Everything of the old configuration is stopped before anything of
        the new one starts, so two generations of a service never hold
        the same port. Startup failures are logged and returned, not
        raised.

        Args:
            config: The new configuration.

        Returns:
            Startup errors keyed by site name.
        """
        async with self._mutex():
            old = self._config
            self._logger.info(
                "reload_started",
                sites=[site.name for site in config.sites],
                previous=[site.name for site in old.sites],
            )
            await self._stop_everything(old)
            self._supervisor = self._new_supervisor(config)
            self._install(config)

            failures = await self._start_services()
            if config.tunnel_enabled:
                try:
                    await self._start_tunnel()
                except (TunnelConfigurationError, ProcessStartupError) as e:
                    self._logger.error("tunnel_start_failed", error=str(e))
            self._logger.info("reload_completed", failed=sorted(failures))
            return failures

    async def restart_site(self, name: str) -> int:
        """Restart the process of one service site.

        Other sites keep running.

        Args:
            name: The site name.

        Returns:
            The PID of the new process.

        Raises:
            ProcessNotFoundError: If no service site has that name.
            ProcessStartupError: If the new process fails to start.
        """
        async with self._mutex():
            site = self._config.site_named(name)
            if not isinstance(site, ServiceSite):
                msg = f"No service site named '{name}'"
                raise ProcessNotFoundError(msg, service_name=name)

            self._logger.info("site_restarting", site=name)
            await self._supervisor.stop(name)
            await self._sweep(site)
            command, cwd, env = self._launch_args(site)
            return await self._supervisor.restart(name, command, cwd=cwd, env=env)

    async def start_tunnel(self) -> int:
        """Start the tunnel helper.

        Returns:
            The PID of the helper.

        Raises:
            TunnelConfigurationError: If the tunnel settings are incomplete.
            ProcessStartupError: If the helper exits right after spawning.
        """
        async with self._mutex():
            return await self._start_tunnel()

    async def _start_tunnel(self) -> int:
        launch = tunnel_launch(self._config)
        pid = await self._supervisor.start(
            launch.name,
            launch.command,
            cwd=self._config.root,
            env=launch.env,
            process_type=ProcessType.TUNNEL_HELPER,
        )
        self._logger.info("tunnel_started", name=launch.name, pid=pid, url=launch.url)
        return pid

    async def stop_tunnel(self) -> None:
        """Stop the tunnel helper if it runs."""
        async with self._mutex():
            await self._stop_tunnel()

    async def _stop_tunnel(self) -> None:
        for record in self._supervisor.get_all_processes():
            if record.type is ProcessType.TUNNEL_HELPER:
                await self._supervisor.stop(record.name)
                self._logger.info("tunnel_stopped", name=record.name)

    async def check_health(self) -> list[HealthCheckResult]:
        """Probe every site once and record the results."""
        results = await self._checker.check_all(self._config)
        for result in results:
            self.monitor.record(result)
        return results

    def snapshot(self) -> StateSnapshot:
        """Return the live processes and the health summary."""
        return StateSnapshot(
            processes=tuple(self._supervisor.get_all_processes()),
            health=self.monitor.summary(),
            config_path=self._config.config_path,
            proxy_port=self._config.proxy_port,
        )
