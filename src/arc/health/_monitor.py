"""Health history and failure-streak classification."""

import threading
from collections import deque
from typing import final

from structlog.typing import FilteringBoundLogger

from arc.utils import default_logger

from ._models import HealthCheckResult, HealthStatus, HealthSummary, SiteHealthSummary

DEFAULT_HISTORY_LIMIT = 100
DEFAULT_DEGRADED_THRESHOLD = 2
DEFAULT_UNHEALTHY_THRESHOLD = 5


@final
class HealthMonitor:
    """Records health results and classifies sites by failure streak.

    Status compares the current consecutive-failure streak against the
    thresholds, so one success immediately clears a degraded or unhealthy
    site. History is a bounded ring per site. All state is guarded by a
    lock, so `record` may be called from concurrent probes.
    """

    __slots__ = (
        "_current",
        "_failures",
        "_history",
        "_lock",
        "_logger",
        "degraded_threshold",
        "history_limit",
        "unhealthy_threshold",
    )

    def __init__(
        self,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        degraded_threshold: int = DEFAULT_DEGRADED_THRESHOLD,
        unhealthy_threshold: int = DEFAULT_UNHEALTHY_THRESHOLD,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            history_limit: Results kept per site.
            degraded_threshold: Streak at which a site is degraded.
            unhealthy_threshold: Streak at which a site is unhealthy.
            logger: Logger for status transitions.
        """
        self.history_limit = history_limit
        self.degraded_threshold = degraded_threshold
        self.unhealthy_threshold = unhealthy_threshold
        self._logger = (logger or default_logger("health")).bind(component="health")
        self._lock = threading.Lock()
        self._history: dict[str, deque[HealthCheckResult]] = {}
        self._current: dict[str, HealthCheckResult] = {}
        self._failures: dict[str, int] = {}

    def record(self, result: HealthCheckResult) -> None:
        """Record a probe result and update the site's failure streak."""
        with self._lock:
            self._current[result.name] = result
            history = self._history.get(result.name)
            if history is None:
                history = self._history[result.name] = deque(maxlen=self.history_limit)
            history.append(result)

            if result.healthy:
                self._failures[result.name] = 0
                return
            failures = self._failures.get(result.name, 0) + 1
            self._failures[result.name] = failures

        if failures == self.unhealthy_threshold:
            self._logger.error(
                "site_unhealthy",
                site=result.name,
                failures=failures,
                message=result.message,
            )
        elif failures == self.degraded_threshold:
            self._logger.warning(
                "site_degraded",
                site=result.name,
                failures=failures,
                message=result.message,
            )

    def _classify(self, failures: int) -> HealthStatus:
        if failures >= self.unhealthy_threshold:
            return HealthStatus.UNHEALTHY
        if failures >= self.degraded_threshold:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def status_for(self, name: str) -> HealthStatus:
        """Classify one site by its current failure streak."""
        with self._lock:
            return self._classify(self._failures.get(name, 0))

    def overall_status(self) -> HealthStatus:
        """Classify the system by its worst site."""
        with self._lock:
            streaks = [self._failures.get(name, 0) for name in self._current]
        worst = max(streaks, default=0)
        return self._classify(worst)

    def consecutive_failures(self, name: str) -> int:
        """Return a site's current failure streak."""
        with self._lock:
            return self._failures.get(name, 0)

    def current_result(self, name: str) -> HealthCheckResult | None:
        """Return a site's most recent result."""
        with self._lock:
            return self._current.get(name)

    def all_current_results(self) -> list[HealthCheckResult]:
        """Return the most recent result of every site, sorted by name."""
        with self._lock:
            return [self._current[name] for name in sorted(self._current)]

    def history_for(self, name: str) -> list[HealthCheckResult]:
        """Return a site's retained results, oldest first."""
        with self._lock:
            return list(self._history.get(name, ()))

    def uptime_percentage(self, name: str) -> float | None:
        """Percentage of retained results that were healthy; None without history."""
        history = self.history_for(name)
        if not history:
            return None
        healthy = sum(1 for result in history if result.healthy)
        return healthy / len(history) * 100

    def average_response_time(self, name: str) -> float | None:
        """Mean probe latency over retained results; None without timings."""
        times = [
            result.response_time_ms
            for result in self.history_for(name)
            if result.response_time_ms is not None
        ]
        if not times:
            return None
        return sum(times) / len(times)

    def summary(self) -> HealthSummary:
        """Build a per-site and overall health summary."""
        sites = tuple(
            SiteHealthSummary(
                name=result.name,
                status=self.status_for(result.name),
                last_check=result.timestamp,
                healthy=result.healthy,
                uptime_percentage=self.uptime_percentage(result.name),
                average_response_time_ms=self.average_response_time(result.name),
                consecutive_failures=self.consecutive_failures(result.name),
                last_message=result.message,
            )
            for result in self.all_current_results()
        )
        return HealthSummary(overall_status=self.overall_status(), sites=sites)

    def clear_history(self) -> None:
        """Forget all results and streaks."""
        with self._lock:
            self._history.clear()
            self._current.clear()
            self._failures.clear()
