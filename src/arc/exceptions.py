"""Arc exceptions."""

from pathlib import Path
from typing import Any


class ArcError(Exception):
    """Base exception for Arc errors."""


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ArcError, ValueError):
    """Raised when configuration is invalid.

    Fatal: raised before any process starts.

    Attributes:
        key: The configuration key that failed validation, if known.
        value: The offending value, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        value: Any = None,  # pyright: ignore[reportExplicitAny,reportAny]
    ) -> None:
        """Initialize with error message and validation context."""
        super().__init__(message)
        self.key: str | None = key
        self.value: Any = value  # pyright: ignore[reportExplicitAny]


class ConfigLoadError(ConfigurationError):
    """Raised when a configuration file cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        """Initialize with error message and optional location context."""
        super().__init__(message)
        self.path: Path | None = path
        self.line: int | None = line
        self.column: int | None = column


class TunnelConfigurationError(ArcError):
    """Raised when the tunnel helper cannot be started from its configuration.

    Each missing precondition (identifier, executable, credentials) is
    reported separately so the user knows exactly what to fix.

    Attributes:
        reason: Short machine-readable reason code.
        hint: Optional suggestion for fixing the problem.
    """

    def __init__(self, message: str, *, reason: str, hint: str | None = None) -> None:
        """Initialize with error message and reason code.

        Args:
            message: Human-readable error message.
            reason: Short reason code, e.g. ``identifier_required``.
            hint: Optional suggestion for fixing the problem.
        """
        super().__init__(message)
        self.reason: str = reason
        self.hint: str | None = hint


# =============================================================================
# Supervisor Exceptions
# =============================================================================


class SupervisorError(ArcError):
    """Base exception for process supervisor errors."""


class ProcessNotFoundError(SupervisorError, KeyError):
    """Raised when a process or site cannot be found by name.

    Attributes:
        service_name: The name that was not found.
    """

    def __init__(self, message: str, *, service_name: str | None = None) -> None:
        """Initialize with error message and service context."""
        super().__init__(message)
        self.service_name: str | None = service_name

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ProcessStartupError(SupervisorError):
    """Raised when a process fails to spawn or exits right after spawning.

    Fatal for that one site only.

    Attributes:
        service_name: The name of the process that failed to start.
        exit_code: Exit code if the process exited immediately.
        log_path: Path to the process log file.
        log_tail: The last lines of the process log, for diagnosis.
        cause: The underlying exception, if any.
    """

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        service_name: str | None = None,
        exit_code: int | None = None,
        log_path: Path | None = None,
        log_tail: tuple[str, ...] = (),
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and startup context.

        Args:
            message: Human-readable error message.
            service_name: The name of the process that failed to start.
            exit_code: Exit code if the process already exited.
            log_path: Path to the process log file.
            log_tail: The last lines of the process log.
            cause: The underlying exception that caused the failure.
        """
        super().__init__(message)
        self.service_name: str | None = service_name
        self.exit_code: int | None = exit_code
        self.log_path: Path | None = log_path
        self.log_tail: tuple[str, ...] = log_tail
        self.cause: Exception | None = cause


class ProcessStopError(SupervisorError):
    """Raised when a process cannot be signalled.

    Attributes:
        service_name: The name of the process that failed to stop.
        cause: The underlying exception that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        service_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and service context."""
        super().__init__(message)
        self.service_name: str | None = service_name
        self.cause: Exception | None = cause


# =============================================================================
# HTTP Exceptions
# =============================================================================


class HTTPRequestError(ArcError):
    """Raised when a client request cannot be read or parsed.

    Attributes:
        status: The HTTP status code to answer the client with.
    """

    def __init__(self, message: str, *, status: int = 400) -> None:
        """Initialize with error message and response status."""
        super().__init__(message)
        self.status: int = status


class ProxyUpstreamError(ArcError):
    """Raised when a backend cannot be reached or answers with garbage.

    Surfaced to the client as 502; never fatal to the server.

    Attributes:
        site_name: The site whose backend failed.
        url: The upstream URL that was requested.
        cause: The underlying transport exception.
    """

    def __init__(
        self,
        message: str,
        *,
        site_name: str,
        url: str,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and upstream context."""
        super().__init__(message)
        self.site_name: str = site_name
        self.url: str = url
        self.cause: Exception | None = cause


class StaticFileError(ArcError):
    """Raised when a static file cannot be served.

    Attributes:
        status: 404 for missing paths, 403 for unlistable directories,
            500 for unreadable files.
        path: The filesystem path involved.
    """

    def __init__(self, message: str, *, status: int, path: Path | None = None) -> None:
        """Initialize with error message and response status."""
        super().__init__(message)
        self.status: int = status
        self.path: Path | None = path


# =============================================================================
# Watcher Exceptions
# =============================================================================


class WatcherSetupError(ArcError):
    """Raised when a single watch target cannot be installed.

    Non-fatal: the watcher logs it and continues with the other targets.

    Attributes:
        path: The path that could not be watched.
    """

    def __init__(self, message: str, *, path: Path) -> None:
        """Initialize with error message and path context."""
        super().__init__(message)
        self.path: Path = path
