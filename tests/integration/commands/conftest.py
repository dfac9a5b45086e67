from collections.abc import Callable
from pathlib import Path

import pytest
from rich.console import Console

from arc.cli import create_app

BASE_CONFIG = 'proxy_port = 8080\nlog_dir = "logs"\nprocess_name = "demo"\n'


@pytest.fixture
def arc_cli_with_exit_code(console: Console) -> Callable[..., int]:
    """Create CLI app for testing that returns the exit code."""

    app = create_app(console=console, error_console=console)

    def _run(*args: str) -> int:
        try:
            app(args)
        except SystemExit as e:
            return e.code if isinstance(e.code, int) else 1
        else:
            return 0

    return _run


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[str], Path]:
    """Return a function writing ``arc.toml`` under tmp_path."""

    def _write(extra: str = "") -> Path:
        path = tmp_path / "arc.toml"
        _ = path.write_text(BASE_CONFIG + extra)
        return path

    return _write
