"""Health check data models."""

from dataclasses import dataclass, field
from enum import StrEnum

import pendulum


def _get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return pendulum.now("UTC").to_iso8601_string()


class HealthStatus(StrEnum):
    """Health classification of a site or of the whole system."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True, slots=True)
class HealthCheckResult:
    """Outcome of one health probe.

    Attributes:
        name: Site name.
        healthy: Whether the probe succeeded.
        message: Failure reason, if any.
        response_time_ms: Probe latency in milliseconds.
        status_code: HTTP status returned by the probe.
        timestamp: ISO 8601 formatted probe time.
    """

    name: str
    healthy: bool
    message: str | None = None
    response_time_ms: float | None = None
    status_code: int | None = None
    timestamp: str = field(default_factory=_get_timestamp)


@dataclass(frozen=True, slots=True)
class SiteHealthSummary:
    """Derived health view of one site."""

    name: str
    status: HealthStatus
    last_check: str
    healthy: bool
    uptime_percentage: float | None
    average_response_time_ms: float | None
    consecutive_failures: int
    last_message: str | None


@dataclass(frozen=True, slots=True)
class HealthSummary:
    """Derived health view of every checked site."""

    overall_status: HealthStatus
    sites: tuple[SiteHealthSummary, ...]
    timestamp: str = field(default_factory=_get_timestamp)
