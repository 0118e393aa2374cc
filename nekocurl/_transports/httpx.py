"""
A driver backed by `httpx.AsyncClient`.

httpx only moves bytes here: redirects are disabled and the body is read raw,
so decompression, redirect handling and status classification stay with the
engine and behave exactly as with the socket driver.
"""

from __future__ import annotations

import typing

import httpx

from .._config import Timeout
from .._exceptions import (
    ConnectError,
    ConnectTimeout,
    LocalProtocolError,
    NetworkError,
    ReadError,
    ReadTimeout,
    RemoteProtocolError,
    TimeoutException,
    TransportError,
    UnsupportedProtocol,
    WriteError,
    WriteTimeout,
    map_exceptions,
)
from .._models import RequestDescriptor
from .base import AsyncBaseTransport, RawResponse

__all__ = ["HTTPXTransport"]

HTTPX_EXCEPTIONS = {
    httpx.ConnectTimeout: ConnectTimeout,
    httpx.ReadTimeout: ReadTimeout,
    httpx.WriteTimeout: WriteTimeout,
    httpx.TimeoutException: TimeoutException,
    httpx.ConnectError: ConnectError,
    httpx.ReadError: ReadError,
    httpx.WriteError: WriteError,
    httpx.NetworkError: NetworkError,
    httpx.LocalProtocolError: LocalProtocolError,
    httpx.RemoteProtocolError: RemoteProtocolError,
    httpx.UnsupportedProtocol: UnsupportedProtocol,
    httpx.TransportError: TransportError,
}

# Defaults httpx adds on its own; only sent when the caller asked for them.
_CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "user-agent")


class HTTPXTransport(AsyncBaseTransport):
    name = "httpx"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    def _to_httpx_timeout(self, timeout: Timeout) -> httpx.Timeout:
        return httpx.Timeout(
            connect=timeout.connect, read=timeout.read, write=timeout.write, pool=timeout.connect
        )

    async def execute(self, request: RequestDescriptor, timeout: Timeout) -> RawResponse:
        owns_client = self._client is None
        client = httpx.AsyncClient() if owns_client else self._client
        assert client is not None

        httpx_request = client.build_request(
            request.method,
            request.url,
            headers=request.headers.multi_items(),
            content=request.body,
            timeout=self._to_httpx_timeout(timeout),
        )
        for name in _CLIENT_DEFAULT_HEADERS:
            if name not in request.headers and name in httpx_request.headers:
                del httpx_request.headers[name]

        try:
            with map_exceptions(HTTPX_EXCEPTIONS, request=request):
                response = await client.send(httpx_request, stream=True, follow_redirects=False)
        except BaseException:
            if owns_client:
                await client.aclose()
            raise

        # The undecoded body; still iterable when the transport already read it.
        stream = typing.cast(httpx.AsyncByteStream, response.stream)

        async def iter_raw() -> typing.AsyncIterator[bytes]:
            with map_exceptions(HTTPX_EXCEPTIONS, request=request):
                async for chunk in stream:
                    yield chunk

        async def on_close() -> None:
            await response.aclose()
            if owns_client:
                await client.aclose()

        return RawResponse(
            response.status_code,
            reason_phrase=response.reason_phrase,
            headers=response.headers.multi_items(),
            stream=iter_raw(),
            http_version=response.http_version,
            on_close=on_close,
        )
