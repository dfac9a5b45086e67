"""Configuration models.

The configuration is an immutable snapshot: a reload always builds a new
`ArcConfig` and swaps it in whole, never patching fields in place.
"""

import os
from enum import StrEnum
from pathlib import Path
from typing import Annotated, ClassVar, Literal, Self

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_LOOPBACK = "127.0.0.1"


class LogLevel(StrEnum):
    """Log level threshold values."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


def expand_path(value: str | Path, base: Path) -> Path:
    """Expand ``~`` and resolve a relative path against `base`."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def _check_identifier(value: str, field: str) -> str:
    if not value or not value.strip():
        msg = f"{field} must not be empty"
        raise ValueError(msg)
    if any(ch.isspace() for ch in value):
        msg = f"{field} must not contain whitespace: {value!r}"
        raise ValueError(msg)
    return value


class LoggingConfig(BaseModel):
    """Logging configuration section.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty logs to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    file: str = ""


class ProcessSpec(BaseModel):
    """How to launch a service's backend process.

    Exactly one of `executable` (a path, resolved against `working_dir`) or
    `command` (a program looked up on ``PATH``) must be set.

    Attributes:
        working_dir: Directory the process runs in.
        executable: Path to a program to run.
        command: Program name to run.
        args: Arguments passed to the program.
        env: Extra environment variables.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    working_dir: str = "."
    executable: str | None = None
    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_program(self) -> Self:
        if (self.executable is None) == (self.command is None):
            msg = "exactly one of 'executable' or 'command' must be set"
            raise ValueError(msg)
        return self

    @property
    def program(self) -> str:
        """The configured executable or command."""
        return self.executable if self.executable is not None else str(self.command)


class _SiteBase(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    name: str
    domain: str
    watch_targets: tuple[str, ...] = ()

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _check_identifier(value, "site name")

    @field_validator("domain")
    @classmethod
    def _validate_domain(cls, value: str) -> str:
        return _check_identifier(value, "site domain")


class StaticSite(_SiteBase):
    """A site served from a directory tree.

    Attributes:
        name: Unique site name.
        domain: Host name routed to this site.
        output_path: Directory served, relative to the base directory.
        watch_targets: Extra paths to watch.
    """

    kind: Literal["static"] = "static"
    output_path: str


class ServiceSite(_SiteBase):
    """A site backed by a supervised local process.

    Attributes:
        name: Unique site name.
        domain: Host name routed to this site.
        port: Local port the backend listens on.
        health_path: Path probed by health checks.
        process: How to launch the backend.
        watch_targets: Paths whose changes restart this site.
    """

    kind: Literal["service"] = "service"
    port: int = Field(ge=1025, le=65535)
    health_path: str = "/health"
    process: ProcessSpec

    @field_validator("health_path")
    @classmethod
    def _validate_health_path(cls, value: str) -> str:
        if not value.startswith("/"):
            msg = f"health_path must start with '/': {value!r}"
            raise ValueError(msg)
        return value

    def base_url(self) -> str:
        """Return the backend's base URL on the loopback interface."""
        return f"http://{_LOOPBACK}:{self.port}"

    def health_url(self) -> str:
        """Return the URL probed by health checks."""
        return f"{self.base_url()}{self.health_path}"


Site = Annotated[StaticSite | ServiceSite, Field(discriminator="kind")]


class WatchConfig(BaseModel):
    """File watching settings.

    Attributes:
        enabled: Whether file watching runs at all.
        watch_config: Reload when the configuration file changes.
        follow_symlinks: Watch symlinked targets.
        debounce_ms: Quiet period after the last event before firing.
        cooldown_ms: Period after firing during which events are ignored.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    watch_config: bool = True
    follow_symlinks: bool = False
    debounce_ms: int = Field(default=300, ge=0)
    cooldown_ms: int = Field(default=1000, ge=0)


class TunnelConfig(BaseModel):
    """Tunnel helper settings.

    Attributes:
        enabled: Whether the tunnel helper is started.
        executable_path: Program launched as the helper.
        identifier: Tunnel name or UUID.
        port: Local port forwarded; defaults to the proxy port.
        credentials_path: Credentials file; defaults to
            ``~/.cloudflared/<identifier>.json``.
        args: Full argument list overriding ``tunnel run <identifier>``.
        process_name: Name the helper is supervised under.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    executable_path: str = "cloudflared"
    identifier: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    credentials_path: str | None = None
    args: tuple[str, ...] | None = None
    process_name: str = "tunnel"

    def resolved_credentials_path(self) -> Path | None:
        """Return the credentials file path, if one can be determined."""
        if self.credentials_path:
            return Path(self.credentials_path).expanduser()
        if self.identifier:
            return Path(f"~/.cloudflared/{self.identifier}.json").expanduser()
        return None

    def command_args(self) -> list[str]:
        """Return the arguments passed to the helper executable."""
        if self.args is not None:
            return list(self.args)
        return ["tunnel", "run", self.identifier or ""]


class SshConfig(BaseModel):
    """SSH forwarding settings exposed through the tunnel.

    Attributes:
        enabled: Whether SSH is exposed.
        domain: Public host name for SSH.
        port: Local SSH port.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    domain: str | None = None
    port: int = Field(default=22, ge=1, le=65535)

    @model_validator(mode="after")
    def _domain_when_enabled(self) -> Self:
        if self.enabled and not self.domain:
            msg = "ssh.domain is required when ssh is enabled"
            raise ValueError(msg)
        return self


def _default_log_dir() -> str:
    return str(platformdirs.user_log_path("arc"))


class ArcConfig(BaseModel):
    """Top-level configuration snapshot.

    Attributes:
        proxy_port: Port the router listens on.
        proxy_host: Address the router binds.
        log_dir: Directory holding per-process logs.
        base_dir: Directory relative paths resolve against.
        config_path: File this configuration was loaded from, if any.
        health_check_interval: Seconds between periodic health probes.
        version: Free-form configuration version.
        region: Free-form deployment region label.
        process_name: Instance name; generated when unset.
        sites: Static and service sites.
        watch: File watching settings.
        tunnel: Tunnel helper settings.
        ssh: SSH forwarding settings.
        logging: Logging settings.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    proxy_port: int = Field(default=8080, ge=1, le=65535)
    proxy_host: str = _LOOPBACK
    log_dir: str = Field(default_factory=_default_log_dir)
    base_dir: Path | None = None
    config_path: Path | None = None
    health_check_interval: float = Field(default=30.0, gt=0)
    version: str | None = None
    region: str | None = None
    process_name: str | None = None
    sites: tuple[Site, ...] = ()
    watch: WatchConfig = Field(default_factory=WatchConfig)
    tunnel: TunnelConfig | None = None
    ssh: SshConfig | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _unique_sites(self) -> Self:
        names: set[str] = set()
        domains: set[str] = set()
        ports: dict[int, str] = {}
        for site in self.sites:
            if site.name in names:
                msg = f"duplicate site name: {site.name!r}"
                raise ValueError(msg)
            names.add(site.name)

            domain = site.domain.lower()
            if domain in domains:
                msg = f"duplicate site domain: {site.domain!r}"
                raise ValueError(msg)
            domains.add(domain)

            if isinstance(site, ServiceSite):
                if site.port in ports:
                    msg = (
                        f"port {site.port} is used by both {ports[site.port]!r} "
                        f"and {site.name!r}"
                    )
                    raise ValueError(msg)
                ports[site.port] = site.name

        tunnel = self.tunnel
        if tunnel is not None and tunnel.enabled and tunnel.process_name in names:
            msg = (
                f"tunnel.process_name {tunnel.process_name!r} is also a site name; "
                "the tunnel helper and the site would share one supervised process"
            )
            raise ValueError(msg)
        return self

    @property
    def root(self) -> Path:
        """The directory relative paths resolve against."""
        return self.base_dir if self.base_dir is not None else Path(os.getcwd())  # noqa: PTH109

    def resolve_path(self, value: str | Path) -> Path:
        """Resolve a configured path against the base directory."""
        return expand_path(value, self.root)

    @property
    def log_path(self) -> Path:
        """The resolved log directory."""
        return self.resolve_path(self.log_dir)

    @property
    def pid_dir(self) -> Path:
        """Directory holding instance descriptors."""
        return self.root / ".pid"

    def working_dir_for(self, site: ServiceSite) -> Path:
        """Resolve a service's working directory."""
        return self.resolve_path(site.process.working_dir)

    def program_for(self, site: ServiceSite) -> str:
        """Resolve the program launched for a service.

        An `executable` is resolved against the working directory; a
        `command` is returned unchanged for ``PATH`` lookup.
        """
        spec = site.process
        if spec.executable is not None:
            return str(expand_path(spec.executable, self.working_dir_for(site)))
        return str(spec.command)

    def output_path_for(self, site: StaticSite) -> Path:
        """Resolve a static site's output directory."""
        return self.resolve_path(site.output_path)

    @property
    def service_sites(self) -> tuple[ServiceSite, ...]:
        """Sites backed by a supervised process."""
        return tuple(site for site in self.sites if isinstance(site, ServiceSite))

    @property
    def static_sites(self) -> tuple[StaticSite, ...]:
        """Sites served from a directory."""
        return tuple(site for site in self.sites if isinstance(site, StaticSite))

    def site_named(self, name: str) -> StaticSite | ServiceSite | None:
        """Return the site with the given name, if any."""
        for site in self.sites:
            if site.name == name:
                return site
        return None

    @property
    def tunnel_enabled(self) -> bool:
        """Whether a tunnel helper should run."""
        return self.tunnel is not None and self.tunnel.enabled
