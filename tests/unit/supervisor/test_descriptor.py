import os
import subprocess
import sys
from pathlib import Path

import orjson
import pendulum
import pytest

from arc.supervisor import ProcessDescriptor, ProcessDescriptorManager


@pytest.fixture
def manager(tmp_path: Path) -> ProcessDescriptorManager:
    return ProcessDescriptorManager(tmp_path / ".pid")


@pytest.fixture
def dead_pid() -> int:
    process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
    _ = process.wait()
    return process.pid


class TestCreate:
    def test_writes_json_and_pid_file(self, manager: ProcessDescriptorManager) -> None:
        started = pendulum.datetime(2024, 5, 1, 12, 0, 0, tz="UTC")

        _ = manager.create(
            "mellow-falcon",
            pid=4321,
            proxy_port=8080,
            config_path="/project/arc.toml",
            started_at=started,
        )

        data = orjson.loads(manager.json_path("mellow-falcon").read_text())
        assert data == {
            "configPath": "/project/arc.toml",
            "name": "mellow-falcon",
            "pid": 4321,
            "proxyPort": 8080,
            "startedAt": "2024-05-01T12:00:00Z",
        }
        assert manager.pid_path("mellow-falcon").read_text() == "4321\n"
        assert not list(manager.pid_dir.glob("*.tmp"))

    def test_read_round_trips(self, manager: ProcessDescriptorManager) -> None:
        created = manager.create("a", pid=os.getpid(), proxy_port=8080, config_path="arc.toml")

        descriptor = manager.read("a")

        assert descriptor is not None
        assert descriptor.name == "a"
        assert descriptor.pid == created.pid
        assert descriptor.proxy_port == 8080
        assert descriptor.is_alive()


class TestRead:
    def test_missing_descriptor_is_none(self, manager: ProcessDescriptorManager) -> None:
        assert manager.read("nope") is None
        assert manager.list_all() == []

    def test_undecodable_file_is_absent(self, manager: ProcessDescriptorManager) -> None:
        manager.pid_dir.mkdir()
        _ = manager.json_path("broken").write_text("{not json")
        _ = manager.json_path("partial").write_text('{"name": "partial"}')

        assert manager.read("broken") is None
        assert manager.list_all() == []

    def test_list_all_is_oldest_first(self, manager: ProcessDescriptorManager) -> None:
        _ = manager.create(
            "newer",
            pid=2,
            proxy_port=8081,
            config_path="b.toml",
            started_at=pendulum.datetime(2024, 5, 2, tz="UTC"),
        )
        _ = manager.create(
            "older",
            pid=1,
            proxy_port=8080,
            config_path="a.toml",
            started_at=pendulum.datetime(2024, 5, 1, tz="UTC"),
        )

        assert [d.name for d in manager.list_all()] == ["older", "newer"]
        assert manager.names() == {"older", "newer"}

    def test_read_by_pid(self, manager: ProcessDescriptorManager) -> None:
        _ = manager.create("a", pid=11, proxy_port=8080, config_path="a.toml")
        _ = manager.create("b", pid=22, proxy_port=8081, config_path="b.toml")

        found = manager.read_by_pid(22)

        assert found is not None
        assert found.name == "b"
        assert manager.read_by_pid(33) is None

    def test_accepts_snake_case_keys(self) -> None:
        descriptor = ProcessDescriptor.model_validate(
            {
                "name": "a",
                "pid": 1,
                "proxy_port": 8080,
                "config_path": "arc.toml",
                "started_at": "2024-05-01T12:00:00Z",
            }
        )

        assert descriptor.proxy_port == 8080


class TestCleanup:
    def test_delete_removes_both_files(self, manager: ProcessDescriptorManager) -> None:
        _ = manager.create("a", pid=os.getpid(), proxy_port=8080, config_path="arc.toml")

        manager.delete("a")
        manager.delete("a")

        assert not manager.json_path("a").exists()
        assert not manager.pid_path("a").exists()

    def test_cleanup_stale_keeps_live_instances(
        self, manager: ProcessDescriptorManager, dead_pid: int
    ) -> None:
        _ = manager.create("live", pid=os.getpid(), proxy_port=8080, config_path="a.toml")
        _ = manager.create("dead", pid=dead_pid, proxy_port=8081, config_path="b.toml")

        removed = manager.cleanup_stale()

        assert [d.name for d in removed] == ["dead"]
        assert manager.names() == {"live"}
        assert not manager.pid_path("dead").exists()
