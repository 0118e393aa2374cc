from __future__ import annotations

import abc
import typing
from types import TracebackType

from .._models import RequestDescriptor
from .._models import reason_phrase as get_reason_phrase

if typing.TYPE_CHECKING:
    from .._config import Timeout

T = typing.TypeVar("T", bound="AsyncBaseTransport")

__all__ = ["AsyncBaseTransport", "RawResponse"]


async def _iter_content(content: bytes) -> typing.AsyncIterator[bytes]:
    if content:
        yield content


class RawResponse:
    """
    The status line, headers and still-encoded body stream of a single hop.

    `stream` yields the body as it came off the wire, minus the transfer
    framing. Content-Encoding is left untouched for the engine to undo.
    """

    def __init__(
        self,
        status_code: int,
        *,
        reason_phrase: str | None = None,
        headers: typing.Iterable[tuple[str, str]] | typing.Mapping[str, str] | None = None,
        content: bytes | None = None,
        stream: typing.AsyncIterator[bytes] | None = None,
        http_version: str = "HTTP/1.1",
        on_close: typing.Callable[[], typing.Awaitable[None]] | None = None,
    ) -> None:
        if content is not None and stream is not None:
            raise TypeError("Pass either 'content' or 'stream', not both.")
        self.status_code = status_code
        self.reason_phrase = reason_phrase if reason_phrase is not None else get_reason_phrase(status_code)
        if isinstance(headers, typing.Mapping):
            headers = headers.items()
        self.headers = [(str(name).lower(), str(value)) for name, value in headers or ()]
        self.http_version = http_version
        self._stream = stream if stream is not None else _iter_content(content or b"")
        self._on_close = on_close
        self.is_closed = False

    async def aiter_raw(self) -> typing.AsyncIterator[bytes]:
        async for chunk in self._stream:
            yield chunk

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self.aiter_raw()])

    async def aclose(self) -> None:
        if self.is_closed:
            return
        self.is_closed = True
        if self._on_close is not None:
            await self._on_close()

    def __repr__(self) -> str:
        return f"<RawResponse [{self.status_code}]>"


class AsyncBaseTransport(abc.ABC):
    """
    A driver: performs the network I/O of one hop.

    Implementations send exactly what the descriptor says and never follow
    redirects, decompress, or classify statuses; the engine does all of that.
    `files` is always empty here, multipart bodies have already been encoded.
    """

    name: typing.ClassVar[str] = ""

    async def __aenter__(self: T) -> T:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        await self.aclose()

    @abc.abstractmethod
    async def execute(self, request: RequestDescriptor, timeout: Timeout) -> RawResponse:
        """
        Send a single request and return once the response head has arrived.

        The caller must `aclose()` the returned response, which releases the
        underlying connection.
        """

    async def aclose(self) -> None:
        pass
