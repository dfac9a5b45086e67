"""Shared test fixtures for Arc tests."""

import logging
import socket
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import structlog
from rich.console import Console
from structlog.testing import CapturingLogger
from structlog.typing import FilteringBoundLogger

from arc.config import ArcConfig, build_config

BACKEND_SCRIPT = """\
import http.server
import os
import sys

PORT = int(os.environ["PORT"])


class Handler(http.server.BaseHTTPRequestHandler):
    def _reply(self, status, body):
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("X-Backend-Port", str(PORT))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path == "/health":
            self._reply(200, b"ok")
        elif self.path.startswith("/status/"):
            self._reply(int(self.path.rsplit("/", 1)[1]), b"status")
        else:
            self._reply(200, f"{self.path} on {PORT}".encode())

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        self._reply(201, self.rfile.read(length))

    def log_message(self, format, *args):
        sys.stdout.write("request " + (format % args) + "\\n")
        sys.stdout.flush()


print(f"listening on {PORT}", flush=True)
http.server.HTTPServer(("127.0.0.1", PORT), Handler).serve_forever()
"""

ConfigFactory = Callable[..., ArcConfig]
PortFactory = Callable[[], int]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


@pytest.fixture
def unused_port() -> PortFactory:
    """Return a function giving a currently free TCP port above 1024."""

    def _port() -> int:
        while True:
            port = _unused_port()
            if port > 1024:  # noqa: PLR2004
                return port

    return _port


@pytest.fixture
def backend_script(tmp_path: Path) -> Path:
    """Write a tiny HTTP backend that listens on $PORT."""
    path = tmp_path / "backend.py"
    path.write_text(BACKEND_SCRIPT)
    return path


@pytest.fixture
def make_config(tmp_path: Path, unused_port: PortFactory) -> ConfigFactory:
    """Return a function building a validated config rooted at tmp_path."""

    def _make(**overrides: Any) -> ArcConfig:  # pyright: ignore[reportExplicitAny,reportAny]
        data: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
            "proxy_port": unused_port(),
            "base_dir": tmp_path,
            "log_dir": "logs",
            "watch": {"enabled": False},
        }
        data.update(overrides)
        return build_config(data)

    return _make


def service_site(
    name: str, port: int, script: Path, *, domain: str | None = None, **extra: Any
) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    """Build a raw service site entry running `script` with this interpreter."""
    return {
        "kind": "service",
        "name": name,
        "domain": domain or f"{name}.localhost",
        "port": port,
        "process": {"command": sys.executable, "args": [str(script)]},
        **extra,
    }


@pytest.fixture
def make_service() -> Callable[..., dict[str, Any]]:  # pyright: ignore[reportExplicitAny]
    return service_site


@dataclass(frozen=True, slots=True)
class CapturedLogs:
    """A logger whose entries are recorded instead of written."""

    logger: FilteringBoundLogger
    sink: CapturingLogger

    def events(self, level: str | None = None) -> list[dict[str, Any]]:  # pyright: ignore[reportExplicitAny]
        """Return recorded entries as dicts with ``event`` and ``level`` keys."""
        return [
            {**call.kwargs, "level": call.method_name}
            for call in self.sink.calls
            if level is None or call.method_name == level
        ]

    def names(self, level: str | None = None) -> list[str]:
        return [entry["event"] for entry in self.events(level)]


@pytest.fixture
def captured_logs() -> CapturedLogs:
    sink = CapturingLogger()
    logger = structlog.wrap_logger(
        sink,
        processors=[structlog.processors.add_log_level],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
    )
    return CapturedLogs(logger=logger, sink=sink)


@pytest.fixture
def console() -> Console:
    return Console(
        width=100,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )
