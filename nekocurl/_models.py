from __future__ import annotations

import dataclasses
import enum
import json as jsonlib
import re
import typing
from http import HTTPStatus

from ._decoders import ContentDecoder, has_empty_body, parse_body
from ._exceptions import DecompressionError, HTTPStatusError, InvalidDescriptor, InvalidURL
from ._urlparse import ParseResult, urlparse

if typing.TYPE_CHECKING:
    from ._transports.base import RawResponse

__all__ = [
    "FileAttachment",
    "Headers",
    "METHODS",
    "Outcome",
    "RequestDescriptor",
    "Response",
    "StreamResponse",
]

METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE")

HeaderTypes = typing.Union[
    "Headers",
    typing.Mapping[str, str],
    typing.Sequence[typing.Tuple[str, str]],
]

_HEADER_NAME_REGEX = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_HEADER_VALUE_FORBIDDEN = ("\r", "\n", "\0")

_UNSET: typing.Any = object()


def _normalize_header_value(value: typing.Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


class Headers(typing.Mapping[str, str]):
    """
    Case-insensitive, order-preserving header mapping.

    Names are stored lower-cased. Repeated names are kept individually in
    `multi_items()` and folded into one comma-separated value for lookups.
    Instances are immutable; `set`, `remove` and `merge` return new ones.
    """

    def __init__(self, headers: HeaderTypes | None = None) -> None:
        items: typing.Iterable[tuple[str, typing.Any]]
        if headers is None:
            items = ()
        elif isinstance(headers, Headers):
            items = headers.multi_items()
        elif isinstance(headers, typing.Mapping):
            items = headers.items()
        else:
            items = headers

        self._list: list[tuple[str, str]] = [
            (str(name).strip().lower(), _normalize_header_value(value))
            for name, value in items
        ]
        self._dict: dict[str, str] = {}
        for name, value in self._list:
            if name in self._dict:
                self._dict[name] = f"{self._dict[name]}, {value}"
            else:
                self._dict[name] = value

    def __getitem__(self, key: str) -> str:
        return self._dict[key.lower()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._dict

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def get_list(self, key: str) -> list[str]:
        key = key.lower()
        return [value for name, value in self._list if name == key]

    def multi_items(self) -> list[tuple[str, str]]:
        return list(self._list)

    def set(self, key: str, value: typing.Any) -> Headers:
        """Return a copy with every `key` entry replaced by a single one."""
        key = key.strip().lower()
        items: list[tuple[str, typing.Any]] = []
        placed = False
        for name, existing in self._list:
            if name != key:
                items.append((name, existing))
            elif not placed:
                items.append((key, value))
                placed = True
        if not placed:
            items.append((key, value))
        return Headers(items)

    def setdefault(self, key: str, value: typing.Any) -> Headers:
        return self if key in self else self.set(key, value)

    def remove(self, *keys: str) -> Headers:
        lowered = {key.lower() for key in keys}
        return Headers([(name, value) for name, value in self._list if name not in lowered])

    def merge(self, other: HeaderTypes | None) -> Headers:
        merged = self
        for name, value in Headers(other).items():
            merged = merged.set(name, value)
        return merged

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return sorted(self._list) == sorted(other._list)
        if isinstance(other, typing.Mapping):
            return self._dict == Headers(other)._dict
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._list)))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._dict!r})"


class FileAttachment(typing.NamedTuple):
    """One multipart part: a file when `filename` is given, else a plain field."""

    field_name: str
    data: typing.Union[bytes, str]
    filename: typing.Optional[str] = None

    @property
    def content(self) -> bytes:
        if isinstance(self.data, str):
            return self.data.encode("utf-8")
        return bytes(self.data)

    @property
    def is_file(self) -> bool:
        return self.filename is not None


def _coerce_attachment(value: typing.Any) -> FileAttachment:
    if isinstance(value, FileAttachment):
        attachment = value
    elif isinstance(value, typing.Mapping):
        attachment = FileAttachment(
            value.get("field_name", value.get("name")),
            value.get("data"),
            value.get("filename"),
        )
    elif isinstance(value, (tuple, list)) and 2 <= len(value) <= 3:
        attachment = FileAttachment(*value)
    else:
        raise InvalidDescriptor(f"Invalid file attachment: {value!r}")

    if not isinstance(attachment.field_name, str) or not attachment.field_name:
        raise InvalidDescriptor("File attachments need a non-empty field name.")
    if not isinstance(attachment.data, (bytes, bytearray, memoryview, str)):
        raise InvalidDescriptor(
            f"File attachment {attachment.field_name!r} must carry bytes or str data."
        )
    if attachment.filename is not None and not isinstance(attachment.filename, str):
        raise InvalidDescriptor(
            f"File attachment {attachment.field_name!r} has a non-string filename."
        )
    return attachment


@dataclasses.dataclass(frozen=True)
class RequestDescriptor:
    """
    Everything needed to issue one request. Immutable once built.

    `files` takes precedence over `body`: when attachments are present the
    body is replaced by a multipart/form-data encoding of them.
    """

    url: str
    method: str = "GET"
    headers: Headers = dataclasses.field(default_factory=Headers)
    body: typing.Optional[bytes] = None
    files: typing.Tuple[FileAttachment, ...] = ()
    follow_redirects: bool = True
    parsed_url: ParseResult = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.method, str) or self.method.upper() not in METHODS:
            raise InvalidDescriptor(
                f"Invalid method {self.method!r}, expected one of {', '.join(METHODS)}."
            )
        object.__setattr__(self, "method", self.method.upper())

        if not isinstance(self.url, str):
            raise InvalidURL(f"Invalid type for url. Expected str, got {type(self.url)!r}.")
        parsed = urlparse(self.url.strip())
        if parsed.scheme not in ("http", "https"):
            protocol = f"{parsed.scheme}://" if parsed.scheme else ""
            raise InvalidURL(f"Request URL has an unsupported protocol {protocol!r}.")
        if not parsed.host:
            raise InvalidURL(f"Request URL is missing a host: {self.url!r}")
        object.__setattr__(self, "parsed_url", parsed)
        object.__setattr__(self, "url", str(parsed))

        headers = self.headers if isinstance(self.headers, Headers) else Headers(self.headers)
        for name, value in headers.multi_items():
            if not _HEADER_NAME_REGEX.match(name):
                raise InvalidDescriptor(f"Invalid header name {name!r}")
            if any(char in value for char in _HEADER_VALUE_FORBIDDEN):
                raise InvalidDescriptor(f"Invalid header value for {name!r}")
        object.__setattr__(self, "headers", headers)

        body = self.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif isinstance(body, (bytearray, memoryview)):
            body = bytes(body)
        elif body is not None and not isinstance(body, bytes):
            raise InvalidDescriptor(f"Invalid body type {type(body)!r}, expected bytes or str.")
        object.__setattr__(self, "body", body)

        object.__setattr__(self, "files", tuple(_coerce_attachment(f) for f in self.files or ()))
        object.__setattr__(self, "follow_redirects", bool(self.follow_redirects))

    def copy_with(self, **changes: typing.Any) -> RequestDescriptor:
        return dataclasses.replace(self, **changes)


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    HTTP_ERROR = "http_error"


def reason_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


class Response:
    """The terminal result of a `.send()`, with its body fully read and decoded."""

    def __init__(
        self,
        status_code: int,
        *,
        status_text: str | None = None,
        headers: HeaderTypes | None = None,
        raw_body: bytes = b"",
        body: typing.Any = _UNSET,
        request: RequestDescriptor | None = None,
        http_version: str = "HTTP/1.1",
    ) -> None:
        self.status_code = status_code
        self.status_text = status_text or reason_phrase(status_code)
        self.headers = headers if isinstance(headers, Headers) else Headers(headers)
        self.raw_body = raw_body
        self.body = raw_body if body is _UNSET else body
        self.http_version = http_version
        self._request = request

    @property
    def status(self) -> int:
        return self.status_code

    @property
    def text(self) -> str:
        return self.raw_body.decode("utf-8", errors="replace")

    @property
    def request(self) -> RequestDescriptor:
        if self._request is None:
            raise RuntimeError("The request instance has not been set on this response.")
        return self._request

    @request.setter
    def request(self, value: RequestDescriptor) -> None:
        self._request = value

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def outcome(self) -> Outcome:
        return Outcome.SUCCESS if self.is_success else Outcome.HTTP_ERROR

    @property
    def is_informational(self) -> bool:
        return 100 <= self.status_code < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def is_error(self) -> bool:
        return not self.is_success

    def raise_for_status(self) -> Response:
        """
        Raise the `HTTPStatusError` if the status is outside the 2xx range.
        """
        if self.is_success:
            return self
        message = f"{self.status_code} {self.status_text}".strip()
        raise HTTPStatusError(message, request=self.request, response=self)

    def json(self, **kwargs: typing.Any) -> typing.Any:
        return jsonlib.loads(self.text, **kwargs)

    def __repr__(self) -> str:
        status = f"{self.status_code} {self.status_text}".strip()
        return f"<Response [{status}]>"


class StreamResponse:
    """
    A response whose status and headers are known but whose body has not been
    consumed yet. Chunks are decompressed as they arrive.
    """

    def __init__(
        self,
        raw: RawResponse,
        request: RequestDescriptor,
        decoder: ContentDecoder,
        *,
        auto_string: bool = False,
    ) -> None:
        self.status_code = raw.status_code
        self.status_text = raw.reason_phrase or reason_phrase(raw.status_code)
        self.headers = Headers(raw.headers)
        self.http_version = raw.http_version
        self.request = request
        self._raw = raw
        self._decoder = decoder
        self._empty_body = has_empty_body(raw.status_code, self.headers)
        self._auto_string = auto_string
        self._consumed = False
        self.num_bytes_downloaded = 0

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    async def aiter_bytes(self) -> typing.AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError(
                "Attempted to read or stream content, but the content has already been streamed."
            )
        self._consumed = True
        try:
            async for chunk in self._raw.aiter_raw():
                self.num_bytes_downloaded += len(chunk)
                if self._empty_body:
                    continue
                decoded = self._decoder.decode(chunk)
                if decoded:
                    yield decoded
            tail = self._decoder.flush()
            if tail:
                yield tail
        except DecompressionError as exc:
            exc.request = self.request
            raise

    async def aread(self) -> Response:
        """Consume the rest of the body and return the decoded `Response`."""
        chunks = [chunk async for chunk in self.aiter_bytes()]
        await self.aclose()
        raw_body = b"".join(chunks)
        return Response(
            self.status_code,
            status_text=self.status_text,
            headers=self.headers,
            raw_body=raw_body,
            body=parse_body(self.headers, raw_body, auto_string=self._auto_string),
            request=self.request,
            http_version=self.http_version,
        )

    async def aclose(self) -> None:
        await self._raw.aclose()

    def __repr__(self) -> str:
        status = f"{self.status_code} {self.status_text}".strip()
        return f"<StreamResponse [{status}]>"
