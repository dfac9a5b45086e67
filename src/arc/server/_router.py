"""The router: one listening port, requests routed by Host header.

This module provides the ProxyServer, which accepts connections on the
proxy port, reads one HTTP/1.1 request per connection, matches its Host
header to a site and either serves files or forwards to a backend.
"""

from dataclasses import dataclass
from typing import final

import anyio
import anyio.abc
from anyio.abc import SocketAttribute
from structlog.typing import FilteringBoundLogger

from arc.config import ArcConfig, ServiceSite, StaticSite
from arc.exceptions import ConfigurationError, HTTPRequestError
from arc.utils import default_logger

from ._http import (
    HEADER_TERMINATOR,
    HTTPRequest,
    HTTPResponse,
    expected_length,
    parse_request,
)
from ._proxy import DEFAULT_PROXY_TIMEOUT, ProxyHandler
from ._request_log import RequestLogger
from ._static import StaticFileHandler

MAX_HEADER_BYTES = 64 * 1024
MAX_REQUEST_BYTES = 16 * 1024 * 1024
DEFAULT_READ_TIMEOUT = 10.0
_RECEIVE_SIZE = 64 * 1024


def strip_port(host: str) -> str:
    """Remove a port suffix from a Host header value.

    Handles bracketed IPv6 literals; the result is lowercased without a
    trailing dot.
    """
    host = host.strip()
    if host.startswith("["):
        end = host.find("]")
        if end > 0:
            return host[1:end].lower()
    name, sep, port = host.rpartition(":")
    if sep and port.isdigit() and ":" not in name:
        host = name
    return host.lower().rstrip(".")


@dataclass(frozen=True, slots=True)
class RoutingTable:
    """Immutable domain to site mapping built from one configuration.

    Attributes:
        sites: Sites keyed by lowercased domain.
        static_handlers: File handlers keyed by site name.
    """

    sites: dict[str, StaticSite | ServiceSite]
    static_handlers: dict[str, StaticFileHandler]

    @classmethod
    def build(cls, config: ArcConfig) -> "RoutingTable":
        """Build the table for a configuration."""
        return cls(
            sites={site.domain.lower().rstrip("."): site for site in config.sites},
            static_handlers={
                site.name: StaticFileHandler(config.output_path_for(site))
                for site in config.static_sites
            },
        )

    def match(self, host: str) -> StaticSite | ServiceSite | None:
        """Return the site whose domain equals `host` without its port."""
        return self.sites.get(strip_port(host))


@final
class ProxyServer:
    """Routes requests arriving on the proxy port to sites.

    `start` binds the listener inside a caller-provided task group and is
    idempotent. `reload` swaps the routing table without rebinding.
    """

    __slots__ = (
        "_config",
        "_listener",
        "_logger",
        "_proxy",
        "_request_logger",
        "_scope",
        "_served",
        "_table",
        "max_header_bytes",
        "max_request_bytes",
        "read_timeout",
    )

    def __init__(  # noqa: PLR0913
        self,
        config: ArcConfig,
        *,
        logger: FilteringBoundLogger | None = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        proxy_timeout: float = DEFAULT_PROXY_TIMEOUT,
        max_header_bytes: int = MAX_HEADER_BYTES,
        max_request_bytes: int = MAX_REQUEST_BYTES,
    ) -> None:
        """Initialize the server.

        Args:
            config: Configuration providing the port and sites.
            logger: Logger for server and request events.
            read_timeout: Seconds allowed for a client to send its request.
            proxy_timeout: Seconds allowed for a backend to answer.
            max_header_bytes: Largest accepted header section.
            max_request_bytes: Largest accepted request, body included.
        """
        self._logger = (logger or default_logger("router")).bind(component="router")
        self._config = config
        self._table = RoutingTable.build(config)
        self._proxy = ProxyHandler(timeout=proxy_timeout, logger=self._logger)
        self._request_logger = RequestLogger(self._logger)
        self._listener: anyio.abc.Listener[anyio.abc.SocketStream] | None = None
        self._scope: anyio.CancelScope | None = None
        self._served: anyio.Event | None = None
        self.read_timeout = read_timeout
        self.max_header_bytes = max_header_bytes
        self.max_request_bytes = max_request_bytes

    @property
    def is_running(self) -> bool:
        """Whether the listener is bound."""
        return self._listener is not None

    @property
    def port(self) -> int | None:
        """The bound port, if listening."""
        if self._listener is None:
            return None
        return self._listener.extra(SocketAttribute.local_port)

    @property
    def routing_table(self) -> RoutingTable:
        """The current routing table."""
        return self._table

    async def start(self, task_group: anyio.abc.TaskGroup) -> None:
        """Bind the proxy port and begin serving.

        A second call while already bound is a no-op.

        Args:
            task_group: Task group the accept loop runs in.

        Raises:
            ConfigurationError: If the port is invalid or already bound.
        """
        if self._listener is not None:
            return

        host, port = self._config.proxy_host, self._config.proxy_port
        if not 1 <= port <= 65535:  # noqa: PLR2004
            msg = f"Invalid proxy port: {port}"
            raise ConfigurationError(msg, key="proxy_port", value=port)
        try:
            listener = await anyio.create_tcp_listener(local_host=host, local_port=port)
        except OSError as e:
            msg = f"Cannot listen on {host}:{port}: {e}"
            raise ConfigurationError(msg, key="proxy_port", value=port) from e

        self._listener = listener
        self._scope = anyio.CancelScope()
        self._served = anyio.Event()
        task_group.start_soon(self._serve, listener, self._scope, self._served)
        self._logger.info("listening", host=host, port=self.port)

    async def _serve(
        self,
        listener: anyio.abc.Listener[anyio.abc.SocketStream],
        scope: anyio.CancelScope,
        served: anyio.Event,
    ) -> None:
        try:
            with scope:
                async with listener:
                    await listener.serve(self._handle_connection)
        finally:
            served.set()

    async def stop(self) -> None:
        """Stop accepting connections. In-flight connections are abandoned."""
        if self._listener is None:
            return
        if self._scope is not None:
            self._scope.cancel()
        if self._served is not None:
            await self._served.wait()
        self._listener = None
        self._scope = None
        self._served = None
        await self._proxy.aclose()
        self._logger.info("stopped")

    def reload(self, config: ArcConfig) -> None:
        """Swap in the routing table for a new configuration."""
        table = RoutingTable.build(config)
        self._config = config
        self._table = table
        self._logger.info("routes_reloaded", domains=sorted(table.sites))

    async def handle_request(self, request: HTTPRequest) -> HTTPResponse:
        """Route one request and produce its response."""
        host = request.host
        if host is None:
            return HTTPResponse.text(400, "Missing Host header")

        table = self._table
        site = table.match(host)
        if site is None:
            return HTTPResponse.text(404, "Route not found")
        if isinstance(site, StaticSite):
            return await table.static_handlers[site.name].handle(request)
        return await self._proxy.handle(request, site)

    async def _read_request(self, stream: anyio.abc.ByteStream) -> HTTPRequest | None:
        buffer = bytearray()
        total: int | None = None
        try:
            with anyio.fail_after(self.read_timeout):
                while True:
                    try:
                        chunk = await stream.receive(_RECEIVE_SIZE)
                    except anyio.EndOfStream:
                        if not buffer:
                            return None
                        msg = "Connection closed before the request was complete"
                        raise HTTPRequestError(msg, status=400) from None
                    buffer += chunk

                    if total is None:
                        end = buffer.find(HEADER_TERMINATOR)
                        if end > self.max_header_bytes or (
                            end < 0 and len(buffer) > self.max_header_bytes
                        ):
                            msg = "Request headers too large"
                            raise HTTPRequestError(msg, status=431)
                        if end < 0:
                            continue
                        # The head is complete; its length and framing no longer change.
                        total = expected_length(bytes(buffer))
                        if total is not None and total > self.max_request_bytes:
                            msg = "Request too large"
                            raise HTTPRequestError(msg, status=413)
                    if total is not None and len(buffer) < total:
                        continue

                    request = parse_request(bytes(buffer))
                    if request is not None:
                        return request
        except TimeoutError as e:
            msg = "Timed out reading request"
            raise HTTPRequestError(msg, status=408) from e

    async def _handle_connection(self, stream: anyio.abc.SocketStream) -> None:
        async with stream:
            try:
                await self._respond(stream)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as e:
                self._logger.debug("connection_dropped", error=str(e))
            except Exception:
                # Errors stay scoped to this connection.
                self._logger.exception("connection_failed")

    async def _respond(self, stream: anyio.abc.SocketStream) -> None:
        try:
            request = await self._read_request(stream)
        except HTTPRequestError as e:
            self._logger.info("bad_request", status=e.status, reason=str(e))
            await stream.send(HTTPResponse.text(e.status, str(e)).serialize())
            return
        if request is None:
            return

        context = self._request_logger.log_request(request)
        response = await self.handle_request(request)
        self._request_logger.log_response(response, context)
        await stream.send(response.serialize())
