"""On-disk descriptors of running Arc instances.

Each running instance writes ``<base_dir>/.pid/arc-<name>.json`` plus a
companion ``arc-<name>.pid`` holding just the PID. Out-of-process tooling
(``arc status``, ``arc stop``) reads these to discover and signal
instances. The directory is shared between concurrent invocations, so
readers treat any unreadable or undecodable file as absent.
"""

import contextlib
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import ClassVar, final

import orjson
import pendulum
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ._orphans import is_process_running

_PREFIX = "arc-"


class ProcessDescriptor(BaseModel):
    """Identity of a running Arc instance.

    Attributes:
        name: Instance name.
        pid: PID of the Arc process itself.
        proxy_port: Port the router listens on.
        config_path: Configuration file the instance runs.
        started_at: When the instance started.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True, extra="ignore", populate_by_name=True
    )

    name: str
    pid: int
    proxy_port: int = Field(alias="proxyPort")
    config_path: str = Field(alias="configPath")
    started_at: datetime = Field(alias="startedAt")

    def to_json(self) -> str:
        """Serialize with camelCase keys, sorted, ISO 8601 timestamps."""
        data = self.model_dump(mode="json", by_alias=True)
        started = pendulum.instance(self.started_at).in_timezone("UTC")
        data["startedAt"] = started.to_iso8601_string()
        return orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS).decode()

    def is_alive(self) -> bool:
        """Check whether the described process still exists."""
        return is_process_running(self.pid)


def _write_atomic(path: Path, content: str) -> None:
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            _ = f.write(content)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


@final
class ProcessDescriptorManager:
    """Creates, reads and cleans up instance descriptors in one directory."""

    __slots__ = ("pid_dir",)

    def __init__(self, pid_dir: Path) -> None:
        """Initialize the manager.

        Args:
            pid_dir: Directory holding descriptors, usually ``<base_dir>/.pid``.
        """
        self.pid_dir = pid_dir

    def json_path(self, name: str) -> Path:
        """Return the descriptor path for an instance name."""
        return self.pid_dir / f"{_PREFIX}{name}.json"

    def pid_path(self, name: str) -> Path:
        """Return the companion PID file path for an instance name."""
        return self.pid_dir / f"{_PREFIX}{name}.pid"

    def create(
        self,
        name: str,
        *,
        pid: int,
        proxy_port: int,
        config_path: Path | str,
        started_at: datetime | None = None,
    ) -> ProcessDescriptor:
        """Write the descriptor and companion PID file for an instance.

        Raises:
            OSError: If the directory or files cannot be written.
        """
        descriptor = ProcessDescriptor(
            name=name,
            pid=pid,
            proxy_port=proxy_port,
            config_path=str(config_path),
            started_at=started_at or pendulum.now("UTC"),
        )
        self.pid_dir.mkdir(parents=True, exist_ok=True)
        _write_atomic(self.json_path(name), descriptor.to_json())
        _write_atomic(self.pid_path(name), f"{pid}\n")
        return descriptor

    def _read_file(self, path: Path) -> ProcessDescriptor | None:
        try:
            return ProcessDescriptor.model_validate_json(path.read_bytes())
        except (OSError, ValidationError, ValueError):
            return None

    def read(self, name: str) -> ProcessDescriptor | None:
        """Read an instance's descriptor; None if missing or undecodable."""
        return self._read_file(self.json_path(name))

    def read_by_pid(self, pid: int) -> ProcessDescriptor | None:
        """Find the descriptor of the instance with the given PID."""
        for descriptor in self.list_all():
            if descriptor.pid == pid:
                return descriptor
        return None

    def list_all(self) -> list[ProcessDescriptor]:
        """Return every decodable descriptor, oldest first."""
        if not self.pid_dir.is_dir():
            return []
        descriptors = [
            descriptor
            for path in self.pid_dir.glob(f"{_PREFIX}*.json")
            if (descriptor := self._read_file(path)) is not None
        ]
        return sorted(descriptors, key=lambda d: d.started_at.timestamp())

    def names(self) -> set[str]:
        """Return the names of every described instance."""
        return {descriptor.name for descriptor in self.list_all()}

    def delete(self, name: str) -> None:
        """Remove an instance's descriptor and PID file, if present."""
        for path in (self.json_path(name), self.pid_path(name)):
            with contextlib.suppress(FileNotFoundError):
                path.unlink()

    def cleanup_stale(self) -> list[ProcessDescriptor]:
        """Delete descriptors whose process no longer exists.

        Returns:
            The descriptors that were removed.
        """
        stale = [d for d in self.list_all() if not d.is_alive()]
        for descriptor in stale:
            self.delete(descriptor.name)
        return stale
