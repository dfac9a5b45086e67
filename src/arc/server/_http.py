"""HTTP/1.1 request parsing and response serialization.

Only what a single request per connection needs: headers framed by a
blank line, a body framed by ``Content-Length``, no chunked encoding.
Responses always carry ``Content-Length`` and ``Connection: close``.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from http import HTTPStatus
from urllib.parse import unquote

from arc.exceptions import HTTPRequestError

HEADER_TERMINATOR = b"\r\n\r\n"
_CRLF = "\r\n"


def _lookup(headers: Iterable[tuple[str, str]], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return None


def origin_form(target: str) -> str:
    """Reduce a request target to path and query.

    An absolute-form target such as ``http://host/a?b`` loses its scheme
    and authority and becomes ``/a?b``. Other targets are kept as they are.
    The fragment is always dropped.
    """
    target = target.partition("#")[0]
    scheme, sep, rest = target.partition("://")
    if not sep or not scheme.isalpha():
        return target
    cut = len(rest)
    for marker in ("/", "?"):
        index = rest.find(marker)
        if index != -1:
            cut = min(cut, index)
    remainder = rest[cut:]
    return remainder if remainder.startswith("/") else f"/{remainder}"


def target_path(target: str) -> str:
    """The path part of a request target, without query string or fragment."""
    return origin_form(target).partition("?")[0]


@dataclass(frozen=True, slots=True)
class HTTPRequest:
    """A parsed client request.

    Attributes:
        method: Request method, e.g. ``GET``.
        target: Raw request target, including any query string.
        version: Protocol version from the request line.
        headers: Header pairs in arrival order.
        body: Request body.
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = b""

    def header(self, name: str) -> str | None:
        """Return the first header with the given name (case-insensitive)."""
        return _lookup(self.headers, name)

    @property
    def host(self) -> str | None:
        """The ``Host`` header, if present and non-empty."""
        value = self.header("host")
        if value is None:
            return None
        return value.strip() or None

    @property
    def path(self) -> str:
        """The percent-decoded path without the query string."""
        return unquote(target_path(self.target)) or "/"


@dataclass(slots=True)
class HTTPResponse:
    """A response to serialize back to the client.

    Attributes:
        status: Status code.
        headers: Header pairs. ``Content-Length`` and ``Connection`` are
            always replaced on serialization.
        body: Response body.
        reason: Reason phrase; derived from the status when empty.
    """

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    reason: str = ""

    def header(self, name: str) -> str | None:
        """Return the first header with the given name (case-insensitive)."""
        return _lookup(self.headers, name)

    @classmethod
    def text(cls, status: int, body: str) -> "HTTPResponse":
        """Build a plain-text response."""
        return cls(
            status=status,
            headers=[("Content-Type", "text/plain; charset=utf-8")],
            body=body.encode(),
        )

    @classmethod
    def empty(cls, status: int) -> "HTTPResponse":
        """Build a response with no body."""
        return cls(status=status)

    def serialize(self) -> bytes:
        """Encode status line, headers and body for the wire."""
        reason = self.reason or _reason_for(self.status)
        lines = [f"HTTP/1.1 {self.status} {reason}"]
        lines.extend(
            f"{key}: {value}"
            for key, value in self.headers
            if key.lower() not in ("content-length", "connection")
        )
        lines.append(f"Content-Length: {len(self.body)}")
        lines.append("Connection: close")
        head = _CRLF.join(lines) + _CRLF + _CRLF
        return head.encode("latin-1", errors="replace") + self.body


def _reason_for(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def parse_request(data: bytes) -> HTTPRequest | None:
    """Parse a request from the bytes read so far.

    Args:
        data: Everything received on the connection.

    Returns:
        The request, or None if more data is needed (headers incomplete
        or the body shorter than ``Content-Length``).

    Raises:
        HTTPRequestError: If the request is malformed or uses chunked
            transfer encoding.
    """
    end = data.find(HEADER_TERMINATOR)
    if end < 0:
        return None

    head = data[:end].decode("latin-1")
    lines = head.split(_CRLF)
    parts = lines[0].split(" ")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        msg = f"Malformed request line: {lines[0]!r}"
        raise HTTPRequestError(msg, status=400)
    method, target = parts[0], parts[1]
    version = parts[2] if len(parts) > 2 else "HTTP/1.0"

    headers: list[tuple[str, str]] = []
    for line in lines[1:]:
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        headers.append((key.strip(), value.strip()))

    if (_lookup(headers, "transfer-encoding") or "").lower() not in ("", "identity"):
        msg = "Chunked request bodies are not supported"
        raise HTTPRequestError(msg, status=501)

    body = data[end + len(HEADER_TERMINATOR) :]
    raw_length = _lookup(headers, "content-length")
    if raw_length is not None:
        try:
            length = int(raw_length)
        except ValueError as e:
            msg = f"Invalid Content-Length: {raw_length!r}"
            raise HTTPRequestError(msg, status=400) from e
        if length < 0:
            msg = f"Invalid Content-Length: {raw_length!r}"
            raise HTTPRequestError(msg, status=400)
        if len(body) < length:
            return None
        body = body[:length]
    else:
        body = b""

    return HTTPRequest(
        method=method.upper(),
        target=target,
        version=version,
        headers=tuple(headers),
        body=body,
    )


def expected_length(data: bytes) -> int | None:
    """Return the total request size once headers are complete, else None."""
    end = data.find(HEADER_TERMINATOR)
    if end < 0:
        return None
    head = data[:end].decode("latin-1")
    for line in head.split(_CRLF)[1:]:
        key, sep, value = line.partition(":")
        if sep and key.strip().lower() == "content-length":
            try:
                return end + len(HEADER_TERMINATOR) + max(int(value.strip()), 0)
            except ValueError:
                break
    return end + len(HEADER_TERMINATOR)
