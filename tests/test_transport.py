from __future__ import annotations

import asyncio

import httpx
import pytest

from azqueue_sdk.exceptions import NetworkError, NetworkErrorKind
from azqueue_sdk.http import Request
from azqueue_sdk.transport import (
    HTTPTransport,
    classify_transport_error,
    default_limits,
    default_timeout,
)

URL = "https://account.queue.core.windows.net/orders/messages"


def test_sends_request_and_wraps_response() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["url"] = str(request.url)
        captured["body"] = request.content
        captured["version"] = request.headers["x-ms-version"]
        return httpx.Response(201, headers={"x-ms-request-id": "svc-1"}, content=b"<ok/>")

    async def scenario():
        transport = HTTPTransport(transport=httpx.MockTransport(handler))
        request = Request("POST", URL + "?visibilitytimeout=5", headers={"x-ms-version": "2018-03-28"}, body=b"<m/>")
        response = await transport.send(request)
        await transport.aclose()
        return request, response

    request, response = asyncio.run(scenario())

    assert captured == {
        "method": "POST",
        "url": URL + "?visibilitytimeout=5",
        "body": b"<m/>",
        "version": "2018-03-28",
    }
    assert response.status_code == 201
    assert response.content == b"<ok/>"
    assert response.request_id == "svc-1"
    assert response.request is request


@pytest.mark.parametrize(
    ("error", "kind", "retryable"),
    [
        (httpx.ConnectTimeout("dial timeout"), NetworkErrorKind.TIMEOUT, True),
        (httpx.ReadTimeout("read timeout"), NetworkErrorKind.TIMEOUT, True),
        (httpx.PoolTimeout("pool exhausted"), NetworkErrorKind.TIMEOUT, True),
        (httpx.ConnectError("connection refused"), NetworkErrorKind.CONNECT, True),
        (httpx.ReadError("connection reset by peer"), NetworkErrorKind.CONNECTION_RESET, True),
        (httpx.RemoteProtocolError("server disconnected"), NetworkErrorKind.CONNECTION_RESET, True),
        (httpx.UnsupportedProtocol("ftp"), NetworkErrorKind.PROTOCOL, False),
        (httpx.LocalProtocolError("bad header"), NetworkErrorKind.PROTOCOL, False),
    ],
)
def test_transport_errors_are_wrapped_with_a_kind(error: httpx.HTTPError, kind: NetworkErrorKind, retryable: bool) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    transport = HTTPTransport(transport=httpx.MockTransport(handler))

    with pytest.raises(NetworkError) as exc_info:
        asyncio.run(transport.send(Request("GET", URL)))

    assert exc_info.value.kind is kind
    assert exc_info.value.retryable is retryable
    assert exc_info.value.cause is error


def test_classify_unknown_http_error_as_other() -> None:
    assert classify_transport_error(httpx.HTTPError("odd")) is NetworkErrorKind.OTHER


def test_client_is_reused_and_closed_once() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(200)

    async def scenario() -> None:
        transport = HTTPTransport(transport=httpx.MockTransport(handler))
        await transport.send(Request("GET", URL))
        first = transport._client()
        await transport.send(Request("GET", URL))
        assert transport._client() is first
        await transport.aclose()
        await transport.aclose()
        with pytest.raises(RuntimeError):
            await transport.send(Request("GET", URL))

    asyncio.run(scenario())
    assert calls == ["GET", "GET"]


def test_pool_and_timeout_defaults() -> None:
    limits = default_limits()
    assert limits.max_connections is None
    assert limits.max_keepalive_connections == 100
    assert limits.keepalive_expiry == 90.0

    timeout = default_timeout()
    assert timeout.connect == 30.0
    assert timeout.read is None
