from collections.abc import Awaitable, Callable
from pathlib import Path

import anyio
import httpx
import pytest

HealthWaiter = Callable[..., Awaitable[httpx.Response]]


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if Path(item.path).is_relative_to(Path(__file__).parent):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def wait_for_ok() -> HealthWaiter:
    """Return a coroutine function polling a URL until it answers 200."""

    async def _wait(
        url: str, *, headers: dict[str, str] | None = None, timeout: float = 10.0
    ) -> httpx.Response:
        async with httpx.AsyncClient(trust_env=False) as client:
            with anyio.fail_after(timeout):
                while True:
                    try:
                        response = await client.get(url, headers=headers)
                    except httpx.TransportError:
                        response = None
                    if response is not None and response.status_code == 200:  # noqa: PLR2004
                        return response
                    await anyio.sleep(0.1)

    return _wait
