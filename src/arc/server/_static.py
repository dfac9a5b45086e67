"""Static file serving for one site's output directory."""

import html
import mimetypes
from pathlib import Path
from typing import final
from urllib.parse import quote, unquote

import anyio

from arc.exceptions import StaticFileError

from ._http import HTTPRequest, HTTPResponse, target_path

DEFAULT_MIME_TYPE = "application/octet-stream"
INDEX_FILE = "index.html"
_UTF8_APPLICATION_TYPES = frozenset({"application/javascript", "application/json"})


def sanitize_path(target: str) -> str:
    """Reduce a request target to a safe relative path.

    Drops the query string and fragment, percent-decodes, removes empty,
    ``.`` and ``..`` segments, and collapses to ``.`` if nothing remains.
    This is the only path traversal defense for static sites.

    Args:
        target: The raw request target.

    Returns:
        A relative path with no parent references.
    """
    path = unquote(target_path(target)).replace("\\", "/")
    segments = [s for s in path.split("/") if s not in ("", ".", "..")]
    return "/".join(segments) or "."


def mime_type_for(path: Path) -> str:
    """Guess a file's MIME type from its extension."""
    mime_type, _encoding = mimetypes.guess_type(path.name)
    if mime_type is None:
        return DEFAULT_MIME_TYPE
    if mime_type.startswith("text/") or mime_type in _UTF8_APPLICATION_TYPES:
        return f"{mime_type}; charset=utf-8"
    return mime_type


def render_listing(entries: list[str], request_path: str) -> str:
    """Render a sorted HTML directory listing."""
    display = "" if request_path == "." else request_path
    prefix = f"/{display}/" if display else "/"
    items = "\n".join(
        f'<li><a href="{quote(prefix + entry)}">{html.escape(entry)}</a></li>'
        for entry in sorted(entries)
    )
    title = html.escape(f"Index of /{display}")
    return (
        "<html>\n"
        f"  <head><title>{title}</title></head>\n"
        "  <body>\n"
        f"    <h1>{title}</h1>\n"
        f"    <ul>{items}</ul>\n"
        "  </body>\n"
        "</html>\n"
    )


@final
class StaticFileHandler:
    """Serves files below a site's output directory.

    Directories serve their ``index.html`` when present and a listing
    otherwise. Missing paths answer 404, unlistable directories 403 and
    unreadable files 500.
    """

    __slots__ = ("root",)

    def __init__(self, root: Path) -> None:
        """Initialize the handler.

        Args:
            root: The resolved output directory of the site.
        """
        self.root = root

    async def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Answer a request from the output directory."""
        try:
            return await self._serve(request)
        except StaticFileError as e:
            return HTTPResponse.text(e.status, _error_body(e.status))

    async def _serve(self, request: HTTPRequest) -> HTTPResponse:
        relative = sanitize_path(request.target)
        full_path = anyio.Path(self.root / relative)

        if await full_path.is_dir():
            index = full_path / INDEX_FILE
            if await index.is_file():
                return await self._serve_file(index)
            return await self._listing(full_path, relative)
        if await full_path.is_file():
            return await self._serve_file(full_path)

        msg = f"Not found: {full_path}"
        raise StaticFileError(msg, status=404, path=Path(full_path))

    async def _serve_file(self, path: anyio.Path) -> HTTPResponse:
        try:
            data = await path.read_bytes()
        except OSError as e:
            msg = f"Failed to read {path}: {e}"
            raise StaticFileError(msg, status=500, path=Path(path)) from e
        return HTTPResponse(
            status=200,
            headers=[("Content-Type", mime_type_for(Path(path)))],
            body=data,
        )

    async def _listing(self, path: anyio.Path, relative: str) -> HTTPResponse:
        try:
            entries = [entry.name async for entry in path.iterdir()]
        except OSError as e:
            msg = f"Cannot list {path}: {e}"
            raise StaticFileError(msg, status=403, path=Path(path)) from e
        return HTTPResponse(
            status=200,
            headers=[("Content-Type", "text/html; charset=utf-8")],
            body=render_listing(entries, relative).encode(),
        )


def _error_body(status: int) -> str:
    if status == 404:  # noqa: PLR2004
        return "Not Found"
    if status == 403:  # noqa: PLR2004
        return "Forbidden"
    return "Failed to read file"
