"""
HTTP/1.1 wire codec.

Serializes request heads and parses response heads and body framing
(content-length, chunked transfer-encoding, or close-delimited). The reader
passed in only needs the `readuntil`, `readexactly` and `read` coroutines of
`asyncio.StreamReader`.
"""

from __future__ import annotations

import asyncio
import re
import typing

from ._exceptions import LocalProtocolError, RemoteProtocolError
from ._urlparse import ParseResult

MAX_LINE_SIZE = 65536
MAX_HEADER_COUNT = 100
READ_CHUNK_SIZE = 65536

METHODS_WITH_BODY = frozenset({"POST", "PUT", "PATCH"})

STATUS_LINE_REGEX = re.compile(rb"^HTTP/(?P<version>\d\.\d) (?P<status>\d{3})(?: (?P<reason>.*))?$")
HEADER_NAME_REGEX = re.compile(rb"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
CHUNK_SIZE_REGEX = re.compile(rb"^[0-9A-Fa-f]+$")


class StreamReader(typing.Protocol):
    async def readuntil(self, separator: bytes = ...) -> bytes: ...

    async def readexactly(self, n: int) -> bytes: ...

    async def read(self, n: int = ...) -> bytes: ...


class ResponseHead(typing.NamedTuple):
    http_version: str
    status_code: int
    reason_phrase: str
    headers: typing.List[typing.Tuple[str, str]]

    def get(self, name: str) -> str | None:
        values = [value for key, value in self.headers if key == name]
        return ", ".join(values) if values else None


def host_header(url: ParseResult) -> str:
    return url.netloc


def build_request_headers(
    method: str,
    url: ParseResult,
    headers: typing.Iterable[tuple[str, str]],
    body: bytes | None,
) -> list[tuple[str, str]]:
    """Header list for the wire: `host` first, framing and `connection` last."""
    framing = ("host", "content-length", "transfer-encoding", "connection")
    wire = [("host", host_header(url))]
    wire.extend((name, value) for name, value in headers if name not in framing)
    if body is not None:
        wire.append(("content-length", str(len(body))))
    elif method in METHODS_WITH_BODY:
        wire.append(("content-length", "0"))
    wire.append(("connection", "close"))
    return wire


def serialize_request(
    method: str,
    url: ParseResult,
    headers: typing.Iterable[tuple[str, str]],
    body: bytes | None,
) -> bytes:
    lines = [f"{method} {url.target} HTTP/1.1"]
    for name, value in build_request_headers(method, url, headers, body):
        if "\r" in value or "\n" in value:
            raise LocalProtocolError(f"Illegal header value for {name!r}")
        lines.append(f"{name}: {value}")
    try:
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
    except UnicodeEncodeError as exc:
        raise LocalProtocolError(f"Request head is not latin-1 encodable: {exc}") from exc
    return head + (body or b"")


async def _read_line(reader: StreamReader) -> bytes:
    try:
        line = await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            raise RemoteProtocolError("Server disconnected without sending a response.") from exc
        raise RemoteProtocolError("Server disconnected in the middle of a line.") from exc
    except asyncio.LimitOverrunError as exc:
        raise RemoteProtocolError("Response line exceeds the maximum size.") from exc
    if len(line) > MAX_LINE_SIZE:
        raise RemoteProtocolError("Response line exceeds the maximum size.")
    return line.rstrip(b"\r\n")


def parse_status_line(line: bytes) -> tuple[str, int, str]:
    match = STATUS_LINE_REGEX.match(line)
    if match is None:
        raise RemoteProtocolError(f"Malformed status line: {line[:100]!r}")
    reason = match.group("reason") or b""
    return (
        "HTTP/" + match.group("version").decode("ascii"),
        int(match.group("status")),
        reason.decode("latin-1").strip(),
    )


async def read_headers(reader: StreamReader) -> list[tuple[str, str]]:
    headers: list[tuple[str, str]] = []
    while True:
        line = await _read_line(reader)
        if not line:
            return headers
        if line[:1] in (b" ", b"\t"):
            # Obsolete line folding continues the previous value.
            if not headers:
                raise RemoteProtocolError("Header continuation without a header.")
            name, value = headers[-1]
            headers[-1] = (name, f"{value} {line.strip().decode('latin-1')}")
            continue
        name, sep, value = line.partition(b":")
        if not sep or not HEADER_NAME_REGEX.match(name):
            raise RemoteProtocolError(f"Malformed header line: {line[:100]!r}")
        headers.append((name.decode("ascii").lower(), value.strip().decode("latin-1")))
        if len(headers) > MAX_HEADER_COUNT:
            raise RemoteProtocolError("Too many response headers.")


async def read_response_head(reader: StreamReader) -> ResponseHead:
    """Read the status line and headers, skipping interim 1xx responses."""
    while True:
        http_version, status_code, reason = parse_status_line(await _read_line(reader))
        headers = await read_headers(reader)
        if 100 <= status_code < 200 and status_code != 101:
            continue
        return ResponseHead(http_version, status_code, reason, headers)


def response_has_body(method: str, status_code: int) -> bool:
    return not (
        method == "HEAD" or 100 <= status_code < 200 or status_code in (204, 304)
    )


async def iter_content_length(reader: StreamReader, length: int) -> typing.AsyncIterator[bytes]:
    remaining = length
    while remaining:
        chunk = await reader.read(min(remaining, READ_CHUNK_SIZE))
        if not chunk:
            raise RemoteProtocolError(
                f"Server disconnected with {remaining} of {length} body bytes outstanding."
            )
        remaining -= len(chunk)
        yield chunk


async def iter_chunked(reader: StreamReader) -> typing.AsyncIterator[bytes]:
    while True:
        size_line = await _read_line(reader)
        size_field = size_line.split(b";", 1)[0].strip()
        if not CHUNK_SIZE_REGEX.match(size_field):
            raise RemoteProtocolError(f"Malformed chunk size: {size_line[:100]!r}")
        size = int(size_field, 16)
        if size == 0:
            # Trailers are read and discarded.
            await read_headers(reader)
            return
        try:
            data = await reader.readexactly(size)
            terminator = await reader.readexactly(2)
        except asyncio.IncompleteReadError as exc:
            raise RemoteProtocolError("Server disconnected in the middle of a chunk.") from exc
        if terminator != b"\r\n":
            raise RemoteProtocolError("Chunk data is not terminated by CRLF.")
        yield data


async def iter_until_close(reader: StreamReader) -> typing.AsyncIterator[bytes]:
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


async def _no_body() -> typing.AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


def iter_response_body(
    reader: StreamReader, method: str, head: ResponseHead
) -> typing.AsyncIterator[bytes]:
    """Pick the body framing for a response, per RFC 9112 section 6.3."""
    if not response_has_body(method, head.status_code):
        return _no_body()

    transfer_encoding = head.get("transfer-encoding")
    if transfer_encoding is not None:
        codings = [coding.strip().lower() for coding in transfer_encoding.split(",")]
        if codings[-1] == "chunked":
            return iter_chunked(reader)
        return iter_until_close(reader)

    content_length = head.get("content-length")
    if content_length is not None:
        values = {value.strip() for value in content_length.split(",")}
        if len(values) != 1 or not next(iter(values)).isdigit():
            raise RemoteProtocolError(f"Invalid content-length: {content_length!r}")
        return iter_content_length(reader, int(values.pop()))

    return iter_until_close(reader)
