"""
The self-contained driver: plain asyncio sockets and the HTTP/1.1 codec.

One connection is opened per hop and closed once its response has been read
(`Connection: close`); nothing is pooled or shared between requests.
"""

from __future__ import annotations

import asyncio
import contextlib
import ssl
import typing

from .._config import Timeout
from .._exceptions import (
    ConnectError,
    ConnectTimeout,
    ReadError,
    ReadTimeout,
    UnsupportedProtocol,
    WriteError,
    WriteTimeout,
    map_exceptions,
)
from .._http11 import MAX_LINE_SIZE, iter_response_body, read_response_head, serialize_request
from .._models import RequestDescriptor
from .base import AsyncBaseTransport, RawResponse

__all__ = ["SocketTransport"]

CONNECT_EXCEPTIONS = {asyncio.TimeoutError: ConnectTimeout, OSError: ConnectError}
READ_EXCEPTIONS = {asyncio.TimeoutError: ReadTimeout, OSError: ReadError}
WRITE_EXCEPTIONS = {asyncio.TimeoutError: WriteTimeout, OSError: WriteError}


class SocketStream:
    """
    Timeout-aware wrapper around an asyncio reader/writer pair.

    Exposes the reader coroutines the codec needs, each bounded by the read
    timeout and with OS errors mapped onto our exceptions.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        timeout: Timeout,
        request: RequestDescriptor,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._timeout = timeout
        self._request = request
        self._closed = False

    async def readuntil(self, separator: bytes = b"\n") -> bytes:
        with map_exceptions(READ_EXCEPTIONS, request=self._request):
            return await asyncio.wait_for(self._reader.readuntil(separator), self._timeout.read)

    async def readexactly(self, n: int) -> bytes:
        with map_exceptions(READ_EXCEPTIONS, request=self._request):
            return await asyncio.wait_for(self._reader.readexactly(n), self._timeout.read)

    async def read(self, n: int = -1) -> bytes:
        with map_exceptions(READ_EXCEPTIONS, request=self._request):
            return await asyncio.wait_for(self._reader.read(n), self._timeout.read)

    async def write(self, data: bytes) -> None:
        with map_exceptions(WRITE_EXCEPTIONS, request=self._request):
            self._writer.write(data)
            await asyncio.wait_for(self._writer.drain(), self._timeout.write)

    async def aclose(self, *, abort: bool = False) -> None:
        if self._closed:
            return
        self._closed = True
        if abort:
            self._writer.transport.abort()
            return
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()


class SocketTransport(AsyncBaseTransport):
    name = "nekocurl"

    def __init__(self, *, ssl_context: ssl.SSLContext | None = None) -> None:
        self._ssl_context = ssl_context

    def get_ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = ssl.create_default_context()
        return self._ssl_context

    async def connect(self, request: RequestDescriptor, timeout: Timeout) -> SocketStream:
        url = request.parsed_url
        if url.scheme not in ("http", "https"):
            raise UnsupportedProtocol(
                f"Request URL has an unsupported protocol '{url.scheme}://'.", request=request
            )
        ssl_context = self.get_ssl_context() if url.scheme == "https" else None
        with map_exceptions(CONNECT_EXCEPTIONS, request=request):
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    url.host,
                    url.effective_port,
                    ssl=ssl_context,
                    server_hostname=url.host if ssl_context is not None else None,
                    limit=MAX_LINE_SIZE,
                ),
                timeout.connect,
            )
        return SocketStream(reader, writer, timeout, request)

    async def execute(self, request: RequestDescriptor, timeout: Timeout) -> RawResponse:
        url = request.parsed_url
        payload = serialize_request(request.method, url, request.headers.multi_items(), request.body)

        stream = await self.connect(request, timeout)
        try:
            await stream.write(payload)
            head = await read_response_head(stream)
            body: typing.AsyncIterator[bytes] = iter_response_body(stream, request.method, head)
        except BaseException:
            await stream.aclose(abort=True)
            raise

        consumed = False

        async def iter_body() -> typing.AsyncIterator[bytes]:
            nonlocal consumed
            async for chunk in body:
                yield chunk
            consumed = True

        async def on_close() -> None:
            # A half-read body leaves the socket unusable, so drop it hard.
            await stream.aclose(abort=not consumed)

        return RawResponse(
            head.status_code,
            reason_phrase=head.reason_phrase,
            headers=head.headers,
            stream=iter_body(),
            http_version=head.http_version,
            on_close=on_close,
        )
