"""Health probes for sites."""

import time
from typing import final

import anyio
import httpx

from arc.config import ArcConfig, ServiceSite, StaticSite

from ._models import HealthCheckResult

DEFAULT_HEALTH_TIMEOUT = 5.0


@final
class HealthChecker:
    """Probes sites once.

    A service is healthy when ``GET`` on its health URL answers 2xx or
    3xx within the timeout. A static site is healthy when its output
    directory exists.
    """

    __slots__ = ("timeout",)

    def __init__(self, *, timeout: float = DEFAULT_HEALTH_TIMEOUT) -> None:
        """Initialize with the per-probe timeout in seconds."""
        self.timeout = timeout

    async def check_service(
        self, site: ServiceSite, client: httpx.AsyncClient | None = None
    ) -> HealthCheckResult:
        """Probe a service's health endpoint.

        Args:
            site: The service site.
            client: Client to reuse; a short-lived one is created if None.

        Returns:
            The probe result; failures carry the reason in `message`.
        """
        if client is None:
            async with self._new_client() as own_client:
                return await self.check_service(site, own_client)

        url = site.health_url()
        started = time.monotonic()
        try:
            response = await client.get(url)
        except httpx.TimeoutException:
            return HealthCheckResult(
                name=site.name,
                healthy=False,
                message=f"Health check timed out after {self.timeout:g}s",
                response_time_ms=_elapsed_ms(started),
            )
        except httpx.HTTPError as e:
            return HealthCheckResult(
                name=site.name,
                healthy=False,
                message=f"Connection error: {e!r}",
                response_time_ms=_elapsed_ms(started),
            )

        elapsed = _elapsed_ms(started)
        if 200 <= response.status_code < 400:  # noqa: PLR2004
            return HealthCheckResult(
                name=site.name,
                healthy=True,
                response_time_ms=elapsed,
                status_code=response.status_code,
            )
        return HealthCheckResult(
            name=site.name,
            healthy=False,
            message=f"Health check failed (status {response.status_code})",
            response_time_ms=elapsed,
            status_code=response.status_code,
        )

    async def check_static(self, site: StaticSite, config: ArcConfig) -> HealthCheckResult:
        """Check that a static site's output directory exists."""
        path = anyio.Path(config.output_path_for(site))
        if await path.exists():
            return HealthCheckResult(name=site.name, healthy=True)
        return HealthCheckResult(
            name=site.name,
            healthy=False,
            message=f"Output path does not exist: {path}",
        )

    async def check_all(self, config: ArcConfig) -> list[HealthCheckResult]:
        """Probe every site of a configuration concurrently.

        Returns:
            One result per site, in configuration order.
        """
        results: dict[str, HealthCheckResult] = {}

        async with self._new_client() as client:

            async def probe(site: StaticSite | ServiceSite) -> None:
                if isinstance(site, ServiceSite):
                    results[site.name] = await self.check_service(site, client)
                else:
                    results[site.name] = await self.check_static(site, config)

            async with anyio.create_task_group() as tg:
                for site in config.sites:
                    tg.start_soon(probe, site)

        return [results[site.name] for site in config.sites]

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,
            trust_env=False,
        )


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)
