"""Network transport: the innermost pipeline stage."""

from __future__ import annotations

import httpx

from .exceptions import NetworkError, NetworkErrorKind
from .http import Request, Response
from .pipeline import Policy

DIAL_TIMEOUT = 30.0
POOL_TIMEOUT = 30.0
IDLE_CONNECTION_TIMEOUT = 90.0
MAX_IDLE_CONNECTIONS_PER_HOST = 100

_ERROR_KINDS: tuple[tuple[type[httpx.HTTPError], NetworkErrorKind], ...] = (
    (httpx.TimeoutException, NetworkErrorKind.TIMEOUT),
    (httpx.ConnectError, NetworkErrorKind.CONNECT),
    (httpx.ReadError, NetworkErrorKind.CONNECTION_RESET),
    (httpx.WriteError, NetworkErrorKind.CONNECTION_RESET),
    (httpx.RemoteProtocolError, NetworkErrorKind.CONNECTION_RESET),
    (httpx.LocalProtocolError, NetworkErrorKind.PROTOCOL),
    (httpx.UnsupportedProtocol, NetworkErrorKind.PROTOCOL),
    (httpx.ProxyError, NetworkErrorKind.PROTOCOL),
    (httpx.DecodingError, NetworkErrorKind.PROTOCOL),
    (httpx.TooManyRedirects, NetworkErrorKind.PROTOCOL),
)


def classify_transport_error(exc: httpx.HTTPError) -> NetworkErrorKind:
    for exc_type, kind in _ERROR_KINDS:
        if isinstance(exc, exc_type):
            return kind
    return NetworkErrorKind.OTHER


def default_limits() -> httpx.Limits:
    # httpx pools keep-alive connections globally rather than per host.
    return httpx.Limits(
        max_connections=None,
        max_keepalive_connections=MAX_IDLE_CONNECTIONS_PER_HOST,
        keepalive_expiry=IDLE_CONNECTION_TIMEOUT,
    )


def default_timeout() -> httpx.Timeout:
    # Read/write time is bounded by the retry policy's per-try timeout.
    return httpx.Timeout(None, connect=DIAL_TIMEOUT, pool=POOL_TIMEOUT)


class HTTPTransport(Policy):
    """Sends requests over one pooled ``httpx.AsyncClient``.

    The client is created on first use and reused for every request until
    ``aclose()``. Pass ``httpx_client`` to supply a configured client, or
    ``transport`` to swap the network layer (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        httpx_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._httpx = httpx_client
        self._transport = transport
        self._closed = False

    def _client(self) -> httpx.AsyncClient:
        if self._closed:
            raise RuntimeError("transport is closed")
        if self._httpx is None:
            self._httpx = httpx.AsyncClient(
                limits=default_limits(),
                timeout=default_timeout(),
                follow_redirects=False,
                trust_env=False,
                transport=self._transport,
            )
        return self._httpx

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._httpx is not None:
            await self._httpx.aclose()

    async def send(self, request: Request) -> Response:
        client = self._client()
        http_request = client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.read_body() if request.body is not None else None,
        )
        try:
            http_response = await client.send(http_request)
        except httpx.HTTPError as exc:
            kind = classify_transport_error(exc)
            raise NetworkError(f"HTTP request failed: {exc!r}", kind=kind, cause=exc) from exc
        return Response(
            http_response.status_code,
            headers=http_response.headers,
            content=http_response.content,
            request=request,
        )
