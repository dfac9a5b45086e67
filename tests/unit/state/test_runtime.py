from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from arc.config import ArcConfig
from arc.state import ArcRuntime, build_watch_targets, instance_name
from arc.utils import is_valid_name
from arc.watch import ChangeCallback

ConfigFactory = Callable[..., ArcConfig]


async def _noop() -> None:
    return None


def _factory(calls: list[str]) -> Callable[[str], ChangeCallback]:
    def make(site: str) -> ChangeCallback:
        calls.append(site)
        return _noop

    return make


@pytest.fixture
def watched_config(tmp_path: Path, make_config: ConfigFactory) -> ArcConfig:
    (tmp_path / "src").mkdir()
    (tmp_path / "content").mkdir()
    _ = (tmp_path / "templates.html").write_text("")
    sites: list[dict[str, Any]] = [  # pyright: ignore[reportExplicitAny]
        {
            "kind": "service",
            "name": "api",
            "domain": "api.localhost",
            "port": 9001,
            "process": {"working_dir": "svc", "executable": "bin/api"},
            "watch_targets": ["src"],
        },
        {
            "kind": "service",
            "name": "worker",
            "domain": "worker.localhost",
            "port": 9002,
            "process": {"command": "worker"},
        },
        {
            "kind": "static",
            "name": "docs",
            "domain": "docs.localhost",
            "output_path": "public",
            "watch_targets": ["content", "templates.html"],
        },
    ]
    return make_config(config_path=tmp_path / "arc.toml", sites=sites)


class TestBuildWatchTargets:
    def test_targets_per_site_kind(self, tmp_path: Path, watched_config: ArcConfig) -> None:
        restarts: list[str] = []
        statics: list[str] = []

        targets = build_watch_targets(
            watched_config,
            on_reload=_noop,
            on_restart=_factory(restarts),
            on_static=_factory(statics),
        )

        described = [(target.path, target.is_directory) for target in targets]
        assert described == [
            (tmp_path / "arc.toml", False),
            (tmp_path / "svc" / "bin" / "api", False),
            (tmp_path / "src", True),
            (tmp_path / "content", True),
            (tmp_path / "templates.html", False),
        ]
        assert targets[0].on_change is _noop
        assert restarts == ["api", "worker"]
        assert statics == ["docs"]

    def test_config_watch_can_be_disabled(
        self, tmp_path: Path, make_config: ConfigFactory
    ) -> None:
        config = make_config(
            config_path=tmp_path / "arc.toml", watch={"enabled": True, "watch_config": False}
        )

        targets = build_watch_targets(
            config, on_reload=_noop, on_restart=_factory([]), on_static=_factory([])
        )

        assert targets == []

    def test_config_without_file_is_not_watched(self, make_config: ConfigFactory) -> None:
        targets = build_watch_targets(
            make_config(), on_reload=_noop, on_restart=_factory([]), on_static=_factory([])
        )

        assert targets == []


class TestInstanceName:
    def test_configured_name_is_sanitized(self, make_config: ConfigFactory) -> None:
        assert instance_name(make_config(process_name="My Project"), set()) == "my-project"

    def test_generated_name_avoids_existing(self, make_config: ConfigFactory) -> None:
        name = instance_name(make_config(), {"taken-name"})

        assert is_valid_name(name)
        assert name != "taken-name"


class TestArcRuntimeConstruction:
    def test_components_share_the_configuration(self, make_config: ConfigFactory) -> None:
        config = make_config(process_name="demo")

        runtime = ArcRuntime(config, handle_signals=False)

        assert runtime.name == "demo"
        assert runtime.config is config
        assert runtime.state.server is runtime.server
        assert runtime.state.monitor is runtime.monitor
        assert runtime.descriptors.pid_dir == config.pid_dir
        assert runtime.descriptor is None
        assert runtime.watcher is None

    def test_commands_before_run_are_dropped(
        self, make_config: ConfigFactory, captured_logs: Any  # pyright: ignore[reportExplicitAny,reportAny]
    ) -> None:
        runtime = ArcRuntime(make_config(), logger=captured_logs.logger, handle_signals=False)

        runtime.request_reload()
        runtime.request_restart("api")

        assert captured_logs.names("debug") == ["command_dropped", "command_dropped"]
