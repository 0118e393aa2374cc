from __future__ import annotations

import asyncio
import typing
from contextlib import asynccontextmanager
from types import TracebackType

from ._config import DriverOptions
from ._decoders import get_content_decoder
from ._exceptions import RequestError, TooManyRedirects, TotalTimeout
from ._models import Headers, RequestDescriptor, Response, StreamResponse
from ._multipart import MultipartEncoder
from ._redirects import resolve_redirect
from ._transports.base import AsyncBaseTransport
from ._transports.socket import SocketTransport

__all__ = ["RequestEngine"]

ACCEPT_ENCODING = "gzip, deflate"


class RequestEngine:
    """
    Execute logical requests, following redirects, over an injected transport.

    The engine holds no per-request state, so one instance can serve any
    number of concurrent `send()` calls.
    """

    def __init__(
        self,
        transport: AsyncBaseTransport | None = None,
        options: DriverOptions | None = None,
    ) -> None:
        self.transport = transport if transport is not None else SocketTransport()
        self.options = options if options is not None else DriverOptions()

    async def __aenter__(self) -> RequestEngine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self.transport.aclose()

    def prepare(self, request: RequestDescriptor) -> RequestDescriptor:
        """Return the descriptor a transport sends for one hop of `request`."""
        headers = request.headers
        body = request.body
        if request.files:
            encoder = MultipartEncoder(request.files)
            headers = headers.merge(encoder.get_headers())
            body = encoder.encode()
        elif request.method != "HEAD" and self.options.force_accept_encoding:
            headers = headers.setdefault("accept-encoding", ACCEPT_ENCODING)
        return request.copy_with(headers=headers, body=body, files=())

    async def send(self, request: RequestDescriptor, *, auto_string: bool = False) -> Response:
        """
        Send `request` and return the decoded terminal response.

        Raises `HTTPStatusError` (carrying the decoded response) when the final
        status is outside the 2xx range.
        """
        response = await self._with_total_timeout(
            self._send(request, auto_string=auto_string), request
        )
        return response.raise_for_status()

    @asynccontextmanager
    async def stream(
        self, request: RequestDescriptor, *, auto_string: bool = False
    ) -> typing.AsyncIterator[StreamResponse]:
        """
        Send `request` and yield the terminal response before its body is read.

        Redirects are followed first. The status is not checked; use
        `(await response.aread()).raise_for_status()` for that. The total
        timeout, if any, only bounds reaching the terminal response head.
        """
        response = await self._with_total_timeout(
            self._open(request, auto_string=auto_string), request
        )
        try:
            yield response
        finally:
            await response.aclose()

    async def _send(self, request: RequestDescriptor, *, auto_string: bool) -> Response:
        response = await self._open(request, auto_string=auto_string)
        try:
            return await response.aread()
        except RequestError as exc:
            exc.request = response.request
            raise
        finally:
            await response.aclose()

    async def _open(self, request: RequestDescriptor, *, auto_string: bool) -> StreamResponse:
        hops = 0
        while True:
            response = await self._send_single_request(request, auto_string=auto_string)
            try:
                next_request = self._resolve_redirect(request, response)
            except BaseException:
                await response.aclose()
                raise
            if next_request is None:
                return response

            try:
                async for _ in response.aiter_bytes():
                    pass
            except RequestError as exc:
                exc.request = request
                raise
            finally:
                await response.aclose()

            hops += 1
            if hops > self.options.max_redirects:
                raise TooManyRedirects(
                    f"Exceeded maximum allowed redirects ({self.options.max_redirects}).",
                    request=next_request,
                )
            request = next_request

    def _resolve_redirect(
        self, request: RequestDescriptor, response: StreamResponse
    ) -> RequestDescriptor | None:
        if not self.options.follow_redirects:
            return None
        return resolve_redirect(
            request,
            response.status_code,
            response.headers,
            preserve_query=self.options.preserve_query_on_relative_redirect,
        )

    async def _send_single_request(
        self, request: RequestDescriptor, *, auto_string: bool
    ) -> StreamResponse:
        prepared = self.prepare(request)
        try:
            raw = await self.transport.execute(prepared, self.options.timeout)
        except RequestError as exc:
            # Report the hop as the caller sees it, not its prepared wire form.
            exc.request = request
            raise
        decoder = get_content_decoder(raw.status_code, Headers(raw.headers))
        return StreamResponse(raw, request, decoder, auto_string=auto_string)

    async def _with_total_timeout(
        self, coro: typing.Awaitable[typing.Any], request: RequestDescriptor
    ) -> typing.Any:
        total = self.options.timeout.total
        if total is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, total)
        except asyncio.TimeoutError as exc:
            raise TotalTimeout(
                f"Request did not complete within {total} seconds.", request=request
            ) from exc
