"""Reverse proxying to service backends."""

from typing import final

import httpx
from structlog.typing import FilteringBoundLogger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from arc.config import ServiceSite
from arc.exceptions import ProxyUpstreamError
from arc.utils import default_logger

from ._http import HTTPRequest, HTTPResponse, origin_form

DEFAULT_PROXY_TIMEOUT = 10.0

_DROPPED_REQUEST_HEADERS = frozenset(
    {"host", "connection", "content-length", "transfer-encoding", "keep-alive"}
)
_DROPPED_RESPONSE_HEADERS = frozenset(
    {"connection", "content-length", "transfer-encoding", "keep-alive"}
)


@retry(
    retry=retry_if_exception_type(httpx.ConnectError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=0.5),
    reraise=True,
)
async def _forward(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: list[tuple[str, str]],
    body: bytes,
) -> tuple[int, list[tuple[str, str]], bytes]:
    """Send a request upstream and read the raw response.

    Connection refusals are retried briefly, since a backend may be
    mid-restart. Timeouts are not retried.

    Returns:
        Status code, header pairs and the undecoded body.
    """
    async with client.stream(method, url, headers=headers, content=body) as response:
        chunks = [chunk async for chunk in response.aiter_raw()]
        headers_out = list(response.headers.multi_items())
        return response.status_code, headers_out, b"".join(chunks)


@final
class ProxyHandler:
    """Forwards requests to a service's backend on the loopback interface."""

    __slots__ = ("_client", "_logger", "timeout")

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_PROXY_TIMEOUT,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            timeout: Seconds allowed for connecting and for each read.
            logger: Logger for upstream failures.
        """
        self.timeout = timeout
        self._logger = (logger or default_logger("proxy")).bind(component="proxy")
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                trust_env=False,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the upstream connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def forward(self, request: HTTPRequest, site: ServiceSite) -> HTTPResponse:
        """Forward a request to the site's backend.

        Absolute-form targets are reduced to path and query, so the
        upstream URL always points at the backend.

        Raises:
            ProxyUpstreamError: If the backend cannot be reached, times out,
                does not speak HTTP, or the target does not form a valid URL.
        """
        target = origin_form(request.target)
        if not target.startswith("/"):
            target = f"/{target}"
        url = f"{site.base_url()}{target}"
        headers = [
            (key, value)
            for key, value in request.headers
            if key.lower() not in _DROPPED_REQUEST_HEADERS
        ]
        try:
            status, upstream_headers, body = await _forward(
                self._get_client(), request.method, url, headers, request.body
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            msg = f"Upstream for '{site.name}' unavailable: {e!r}"
            raise ProxyUpstreamError(msg, site_name=site.name, url=url, cause=e) from e

        return HTTPResponse(
            status=status,
            headers=[
                (key, value)
                for key, value in upstream_headers
                if key.lower() not in _DROPPED_RESPONSE_HEADERS
            ],
            body=body,
        )

    async def handle(self, request: HTTPRequest, site: ServiceSite) -> HTTPResponse:
        """Forward a request, answering 502 when the backend fails."""
        try:
            return await self.forward(request, site)
        except ProxyUpstreamError as e:
            self._logger.warning(
                "proxy_upstream_failed",
                site=e.site_name,
                url=e.url,
                error=repr(e.cause),
            )
            return HTTPResponse.text(502, "Upstream unavailable")
