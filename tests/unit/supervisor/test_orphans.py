import os
import socket
import subprocess
import sys

import pytest

from arc.supervisor import (
    is_generic_runner,
    is_process_running,
    pids_for_port,
    terminate_gracefully,
    with_descendants,
)
from arc.supervisor._orphans import protected_pids


class TestIsGenericRunner:
    @pytest.mark.parametrize(
        "command",
        ["python", "python3", "python3.12", "/usr/bin/python3.12", "node", "npx", "bash", "UV"],
    )
    def test_generic(self, command: str) -> None:
        assert is_generic_runner(command)

    @pytest.mark.parametrize("command", ["uvicorn", "./bin/api", "cloudflared", "hugo", ""])
    def test_specific(self, command: str) -> None:
        assert not is_generic_runner(command)


class TestProcessQueries:
    def test_current_process_is_running(self) -> None:
        assert is_process_running(os.getpid())

    def test_reaped_process_is_not_running(self) -> None:
        process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
        _ = process.wait()

        assert not is_process_running(process.pid)

    def test_protected_pids_include_self_and_parent(self) -> None:
        protected = protected_pids()

        assert os.getpid() in protected
        assert os.getppid() in protected

    def test_with_descendants_keeps_inputs(self) -> None:
        assert os.getpid() in with_descendants([os.getpid()])

    def test_listening_socket_is_found(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            s.listen()
            port = s.getsockname()[1]

            pids = pids_for_port(port)

        assert os.getpid() in pids


@pytest.mark.anyio
class TestTerminateGracefully:
    async def test_missing_process_counts_as_gone(self) -> None:
        process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
        _ = process.wait()

        assert await terminate_gracefully(process.pid, wait_seconds=0.5)

    async def test_terminates_a_live_process(self) -> None:
        process = subprocess.Popen(  # noqa: S603
            [sys.executable, "-c", "import time; time.sleep(30)"]
        )
        try:
            # An unreaped child stays a zombie, which counts as not running.
            assert await terminate_gracefully(process.pid, wait_seconds=5.0)
        finally:
            process.kill()
            _ = process.wait()
