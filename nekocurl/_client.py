from __future__ import annotations

import json as jsonlib
import logging
import typing
from contextlib import asynccontextmanager
from types import MappingProxyType

from .__version__ import __version__
from ._config import DriverOptions, build_useragent, get_default_driver, get_default_useragent
from ._engine import RequestEngine
from ._exceptions import HTTPStatusError, InvalidDescriptor
from ._models import (
    METHODS,
    FileAttachment,
    Headers,
    RequestDescriptor,
    Response,
    StreamResponse,
    _coerce_attachment,
)
from ._transports import AsyncBaseTransport, HTTPXTransport, SocketTransport

__all__ = ["DRIVERS", "Nekocurl", "request"]

logger = logging.getLogger("nekocurl.client")

TransportFactory = typing.Callable[[], AsyncBaseTransport]

#: Driver names understood by `Nekocurl.set_driver()`, read-only.
DRIVERS: typing.Mapping[str, TransportFactory] = MappingProxyType(
    {
        SocketTransport.name: SocketTransport,
        HTTPXTransport.name: HTTPXTransport,
    }
)

DriverOptionTypes = typing.Union[DriverOptions, typing.Mapping[str, typing.Any], None]


class Nekocurl:
    """
    A fluent request builder that hands the finished request to a driver.

    Usage:

    ```python
    >>> body = await Nekocurl("https://example.org/api", json=True).send()
    >>> response = await (
    ...     Nekocurl("https://example.org/upload", method="POST")
    ...     .attach_file("avatar", data, "avatar.png")
    ...     .send(full_response=True)
    ... )
    ```

    Parameters:

    * **url** - *(optional)* The URL to request.
    * **driver** - *(optional)* A name from `Nekocurl.available_drivers()`.
      Defaults to `Nekocurl.default_driver()`.
    * **driver_options** - *(optional)* A `DriverOptions`, or a mapping of
      its fields.
    * **method** - *(optional)* The HTTP method, `GET` by default.
    * **headers** - *(optional)* Request headers.
    * **data** - *(optional)* The raw request body.
    * **files** - *(optional)* Attachments, sent as multipart/form-data.
    * **auto_string** - *(optional)* Return text instead of bytes bodies.
    * **json** - *(optional)* Mark the payload as JSON and parse text
      responses as JSON where possible.
    * **transport** - *(optional)* A transport instance to use instead of
      the named driver. It is not closed by the builder.
    """

    version: typing.ClassVar[str] = __version__

    def __init__(
        self,
        url: str | None = None,
        *,
        driver: str | None = None,
        driver_options: DriverOptionTypes = None,
        method: str = "GET",
        headers: typing.Mapping[str, typing.Any] | None = None,
        data: str | bytes | None = None,
        files: typing.Iterable[typing.Any] | None = None,
        auto_string: bool = True,
        json: bool = False,
        transport: AsyncBaseTransport | None = None,
    ) -> None:
        self._url: str | None = None
        self._driver = self.default_driver()
        self._driver_options = DriverOptions()
        self._method = "GET"
        self._headers = Headers()
        self._data: bytes | str | None = None
        self._files: list[FileAttachment] = []
        self._auto_string = bool(auto_string)
        self._json = bool(json)
        self._transport = transport

        if url is not None:
            self.set_url(url)
        if driver is not None:
            self.set_driver(driver)
        elif transport is not None:
            self._driver = transport.name
        if driver_options is not None:
            self.set_driver_options(driver_options)
        self.set_method(method)
        if headers:
            self.set_headers(headers)
        if data is not None:
            self.set_data(data)
        if files:
            self.attach_files(files)

    @staticmethod
    def available_drivers() -> tuple[str, ...]:
        return tuple(DRIVERS)

    @staticmethod
    def has_driver(name: str) -> bool:
        return name in DRIVERS

    @staticmethod
    def default_driver() -> str:
        """The driver used when none is set; see `NEKOCURL_DEFAULT_DRIVER`."""
        return get_default_driver(DRIVERS)

    @staticmethod
    def default_useragent() -> str | None:
        """The user agent set by `NEKOCURL_DEFAULT_USERAGENT`, if any."""
        return get_default_useragent()

    @staticmethod
    def is_valid_url(url: typing.Any) -> bool:
        try:
            RequestDescriptor(url)
        except InvalidDescriptor:
            return False
        return True

    @property
    def driver(self) -> str:
        return self._driver

    @property
    def driver_options(self) -> DriverOptions:
        return self._driver_options

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def method(self) -> str:
        return self._method

    @property
    def headers(self) -> Headers:
        return self._headers

    @property
    def files(self) -> tuple[FileAttachment, ...]:
        return tuple(self._files)

    def set_driver(self, name: str) -> Nekocurl:
        if name not in DRIVERS:
            raise ValueError(f"Cannot find specified driver {name!r}")
        self._driver = name
        self._transport = None
        return self

    def set_driver_options(self, options: DriverOptionTypes) -> Nekocurl:
        if isinstance(options, DriverOptions):
            self._driver_options = options
        else:
            self._driver_options = DriverOptions.from_mapping(options)
        return self

    def set_method(self, method: str) -> Nekocurl:
        if not isinstance(method, str) or method.upper() not in METHODS:
            raise ValueError(f"Invalid method {method!r}, expected one of {', '.join(METHODS)}.")
        self._method = method.upper()
        return self

    def set_url(self, url: str) -> Nekocurl:
        self._url = RequestDescriptor(url).url
        return self

    def set_header(self, name: str, value: typing.Any) -> Nekocurl:
        if not isinstance(name, str) or not name or value is None or not str(value):
            raise ValueError(f"Invalid header {name!r}")
        self._headers = self._headers.set(name.lower(), str(value))
        return self

    def set_headers(self, headers: typing.Mapping[str, typing.Any]) -> Nekocurl:
        if not isinstance(headers, typing.Mapping):
            raise ValueError("Headers must be passed as a mapping.")
        for name, value in headers.items():
            self.set_header(name, value)
        return self

    def set_data(self, data: str | bytes) -> Nekocurl:
        if not isinstance(data, (str, bytes)):
            raise TypeError(f"Invalid data type {type(data)!r}, expected str or bytes.")
        self._data = data
        return self

    def attach_file(
        self, name: str, data: bytes | str, filename: str | None = None
    ) -> Nekocurl:
        self._files.append(_coerce_attachment(FileAttachment(name, data, filename)))
        return self

    def attach_files(self, files: typing.Iterable[typing.Any]) -> Nekocurl:
        for attachment in files:
            self._files.append(_coerce_attachment(attachment))
        return self

    def to_descriptor(self) -> RequestDescriptor:
        """Build the immutable request this builder currently describes."""
        if self._url is None:
            raise InvalidDescriptor("No url specified.")

        headers = self._headers
        if "user-agent" not in headers:
            headers = headers.set("user-agent", build_useragent(self._driver))
        if self._json and headers.get("content-type") != "application/json":
            headers = headers.set("content-type", "application/json")

        return RequestDescriptor(
            self._url,
            method=self._method,
            headers=headers,
            body=self._data,
            files=tuple(self._files),
        )

    def _get_engine(self) -> RequestEngine:
        transport = self._transport if self._transport is not None else DRIVERS[self._driver]()
        return RequestEngine(transport, self._driver_options)

    async def _aclose_engine(self, engine: RequestEngine) -> None:
        if engine.transport is not self._transport:
            await engine.transport.aclose()

    async def send(self, full_response: bool = False) -> typing.Any:
        """
        Send the request.

        Returns the decoded body, the response headers for HEAD requests, or
        the whole `Response` with `full_response=True`. Non-2xx responses
        raise `HTTPStatusError`.
        """
        request = self.to_descriptor()
        engine = self._get_engine()
        logger.debug("Sending %s %s with the %r driver", request.method, request.url, self._driver)
        try:
            response = await engine.send(request, auto_string=self._auto_string)
        except HTTPStatusError as exc:
            exc.response.body = self._postprocess_body(exc.response.body)
            raise
        finally:
            await self._aclose_engine(engine)
        logger.debug("Received %r for %s %s", response, request.method, request.url)

        response.body = self._postprocess_body(response.body)
        if full_response:
            return response
        if request.method == "HEAD":
            return response.headers
        return response.body

    @asynccontextmanager
    async def send_passthrough(self) -> typing.AsyncIterator[StreamResponse]:
        """
        Send the request and yield the response before its body is read.

        The status is not checked here.
        """
        request = self.to_descriptor()
        engine = self._get_engine()
        logger.debug(
            "Streaming %s %s with the %r driver", request.method, request.url, self._driver
        )
        try:
            async with engine.stream(request, auto_string=self._auto_string) as response:
                yield response
        finally:
            await self._aclose_engine(engine)

    def _postprocess_body(self, body: typing.Any) -> typing.Any:
        if self._auto_string and isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        if self._json and isinstance(body, str):
            try:
                return jsonlib.loads(body)
            except ValueError:
                return body
        return body

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} [{self._method} {self._url}] driver={self._driver!r}>"


async def request(
    method: str,
    url: str,
    *,
    headers: typing.Mapping[str, typing.Any] | None = None,
    data: str | bytes | None = None,
    files: typing.Iterable[typing.Any] | None = None,
    driver: str | None = None,
    driver_options: DriverOptionTypes = None,
    auto_string: bool = True,
    json: bool = False,
    transport: AsyncBaseTransport | None = None,
) -> Response:
    """
    Sends a request and returns the full `Response`.

    Usage:

    ```
    >>> import nekocurl
    >>> response = await nekocurl.request("GET", "https://example.org")
    >>> response
    <Response [200 OK]>
    ```
    """
    client = Nekocurl(
        url,
        driver=driver,
        driver_options=driver_options,
        method=method,
        headers=headers,
        data=data,
        files=files,
        auto_string=auto_string,
        json=json,
        transport=transport,
    )
    return typing.cast(Response, await client.send(full_response=True))
