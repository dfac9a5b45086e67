"""Per-request structured logging with correlation IDs."""

import time
import uuid
from dataclasses import dataclass
from typing import final

from structlog.typing import FilteringBoundLogger

from ._http import HTTPRequest, HTTPResponse

_CORRELATION_HEADERS = ("x-correlation-id", "x-request-id")


@dataclass(frozen=True, slots=True)
class RequestContext:
    """What is known about a request when it arrives.

    Attributes:
        correlation_id: ID tying the request and response entries together.
        started: Monotonic start time in seconds.
        method: Request method.
        path: Request path.
        host: Host header, if any.
    """

    correlation_id: str
    started: float
    method: str
    path: str
    host: str | None

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the request arrived."""
        return round((time.monotonic() - self.started) * 1000, 2)


def correlation_id_for(request: HTTPRequest) -> str:
    """Reuse the client's correlation ID header or generate a new one."""
    for name in _CORRELATION_HEADERS:
        value = request.header(name)
        if value:
            return value
    return uuid.uuid4().hex


@final
class RequestLogger:
    """Logs one received and one sent entry per request."""

    __slots__ = ("_logger",)

    def __init__(self, logger: FilteringBoundLogger) -> None:
        """Initialize with the logger entries are written to."""
        self._logger = logger.bind(component="http")

    def log_request(self, request: HTTPRequest) -> RequestContext:
        """Log an incoming request and return its context."""
        context = RequestContext(
            correlation_id=correlation_id_for(request),
            started=time.monotonic(),
            method=request.method,
            path=request.path,
            host=request.host,
        )
        self._logger.info(
            "request_received",
            correlation_id=context.correlation_id,
            method=context.method,
            path=context.path,
            host=context.host or "-",
            content_length=len(request.body),
        )
        return context

    def log_response(self, response: HTTPResponse, context: RequestContext) -> None:
        """Log the response sent for a request."""
        log = self._logger.warning if response.status >= 500 else self._logger.info  # noqa: PLR2004
        log(
            "response_sent",
            correlation_id=context.correlation_id,
            method=context.method,
            path=context.path,
            host=context.host or "-",
            status=response.status,
            duration_ms=context.elapsed_ms,
            content_length=len(response.body),
        )
