"""HTTP entry point: routing, static files and reverse proxying."""

from ._http import (
    HTTPRequest,
    HTTPResponse,
    expected_length,
    origin_form,
    parse_request,
    target_path,
)
from ._proxy import DEFAULT_PROXY_TIMEOUT, ProxyHandler
from ._request_log import RequestContext, RequestLogger, correlation_id_for
from ._router import ProxyServer, RoutingTable, strip_port
from ._static import StaticFileHandler, mime_type_for, render_listing, sanitize_path

__all__ = [
    "DEFAULT_PROXY_TIMEOUT",
    "HTTPRequest",
    "HTTPResponse",
    "ProxyHandler",
    "ProxyServer",
    "RequestContext",
    "RequestLogger",
    "RoutingTable",
    "StaticFileHandler",
    "correlation_id_for",
    "expected_length",
    "mime_type_for",
    "origin_form",
    "parse_request",
    "render_listing",
    "sanitize_path",
    "strip_port",
    "target_path",
]
