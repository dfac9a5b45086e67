from collections.abc import Callable

import httpx
import pytest

from arc.config import ServiceSite
from arc.exceptions import ProxyUpstreamError
from arc.server import HTTPRequest, ProxyHandler


def _service(port: int = 9001) -> ServiceSite:
    return ServiceSite(
        name="api",
        domain="api.localhost",
        port=port,
        process={"command": "api"},  # pyright: ignore[reportArgumentType]
    )


def _handler(transport: Callable[[httpx.Request], httpx.Response]) -> ProxyHandler:
    handler = ProxyHandler(timeout=1.0)
    handler._client = httpx.AsyncClient(transport=httpx.MockTransport(transport))  # pyright: ignore[reportPrivateUsage]
    return handler


@pytest.mark.anyio
class TestForward:
    async def test_origin_form_target_is_appended_to_backend(self) -> None:
        seen: list[str] = []

        def transport(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"ok")

        handler = _handler(transport)
        response = await handler.forward(HTTPRequest(method="GET", target="/a/b?x=1"), _service())
        await handler.aclose()

        assert seen == ["http://127.0.0.1:9001/a/b?x=1"]
        assert response.status == 200
        assert response.body == b"ok"

    async def test_absolute_form_target_keeps_the_backend_authority(self) -> None:
        seen: list[str] = []

        def transport(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(204)

        handler = _handler(transport)
        request = HTTPRequest(method="GET", target="http://elsewhere.example/hello?x=1")
        _ = await handler.forward(request, _service())
        await handler.aclose()

        assert seen == ["http://127.0.0.1:9001/hello?x=1"]

    async def test_hop_by_hop_headers_are_dropped(self) -> None:
        seen: list[httpx.Request] = []

        def transport(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, headers={"Connection": "keep-alive", "X-Kept": "1"})

        handler = _handler(transport)
        request = HTTPRequest(
            method="GET",
            target="/",
            headers=(("Host", "api.localhost"), ("Connection", "close"), ("X-Trace", "t1")),
        )
        response = await handler.forward(request, _service())
        await handler.aclose()

        assert seen[0].headers["x-trace"] == "t1"
        assert seen[0].headers.get("connection") != "close"
        names = {key.lower() for key, _ in response.headers}
        assert "x-kept" in names
        assert "connection" not in names

    async def test_invalid_url_is_an_upstream_error(self) -> None:
        def transport(request: httpx.Request) -> httpx.Response:
            pytest.fail(f"unexpected upstream request to {request.url}")

        handler = _handler(transport)
        request = HTTPRequest(method="GET", target="/a\x01b")

        with pytest.raises(ProxyUpstreamError) as exc_info:
            _ = await handler.forward(request, _service())
        await handler.aclose()

        assert exc_info.value.site_name == "api"
        assert isinstance(exc_info.value.cause, httpx.InvalidURL)


@pytest.mark.anyio
class TestHandle:
    async def test_invalid_url_answers_502(self) -> None:
        def transport(request: httpx.Request) -> httpx.Response:
            pytest.fail(f"unexpected upstream request to {request.url}")

        handler = _handler(transport)
        response = await handler.handle(HTTPRequest(method="GET", target="/a\x01b"), _service())
        await handler.aclose()

        assert response.status == 502
        assert response.body == b"Upstream unavailable"

    async def test_refused_connection_answers_502(self) -> None:
        def transport(request: httpx.Request) -> httpx.Response:
            msg = "refused"
            raise httpx.ConnectError(msg, request=request)

        handler = _handler(transport)
        response = await handler.handle(HTTPRequest(method="GET", target="/"), _service())
        await handler.aclose()

        assert response.status == 502
