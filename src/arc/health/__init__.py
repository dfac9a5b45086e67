"""Health monitoring for sites."""

from ._checks import DEFAULT_HEALTH_TIMEOUT, HealthChecker
from ._models import HealthCheckResult, HealthStatus, HealthSummary, SiteHealthSummary
from ._monitor import (
    DEFAULT_DEGRADED_THRESHOLD,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_UNHEALTHY_THRESHOLD,
    HealthMonitor,
)

__all__ = [
    "DEFAULT_DEGRADED_THRESHOLD",
    "DEFAULT_HEALTH_TIMEOUT",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_UNHEALTHY_THRESHOLD",
    "HealthCheckResult",
    "HealthChecker",
    "HealthMonitor",
    "HealthStatus",
    "HealthSummary",
    "SiteHealthSummary",
]
