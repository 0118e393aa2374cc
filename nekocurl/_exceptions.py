"""
Our exception hierarchy:

* HTTPError
  x RequestError
    + TransportError
      - TimeoutException
        · ConnectTimeout
        · ReadTimeout
        · WriteTimeout
        · TotalTimeout
      - NetworkError
        · ConnectError
        · ReadError
        · WriteError
      - ProtocolError
        · LocalProtocolError
        · RemoteProtocolError
      - UnsupportedProtocol
    + DecodingError
      - DecompressionError
    + TooManyRedirects
  x HTTPStatusError
* InvalidDescriptor
  x InvalidURL
"""

from __future__ import annotations

import contextlib
import typing

if typing.TYPE_CHECKING:
    from ._models import RequestDescriptor, Response

__all__ = [
    "ConnectError",
    "ConnectTimeout",
    "DecodingError",
    "DecompressionError",
    "HTTPError",
    "HTTPStatusError",
    "InvalidDescriptor",
    "InvalidURL",
    "LocalProtocolError",
    "NetworkError",
    "ProtocolError",
    "ReadError",
    "ReadTimeout",
    "RemoteProtocolError",
    "RequestError",
    "TimeoutException",
    "TooManyRedirects",
    "TotalTimeout",
    "TransportError",
    "UnsupportedProtocol",
    "WriteError",
    "WriteTimeout",
]


class HTTPError(Exception):
    """
    Base class for `RequestError` and `HTTPStatusError`.

    Useful for `try...except` blocks when issuing a request,
    and then calling `.raise_for_status()`.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self._request: RequestDescriptor | None = None

    @property
    def request(self) -> RequestDescriptor:
        if self._request is None:
            raise RuntimeError("The .request property has not been set.")
        return self._request

    @request.setter
    def request(self, request: RequestDescriptor) -> None:
        self._request = request


class RequestError(HTTPError):
    """
    Base class for all exceptions that may occur when issuing a `.send()`.
    """

    def __init__(self, message: str, *, request: RequestDescriptor | None = None) -> None:
        super().__init__(message)
        self._request = request


class TransportError(RequestError):
    """
    Base class for all exceptions that occur at the level of the transport.
    """


# Timeout exceptions...


class TimeoutException(TransportError):
    """
    The base class for timeout errors.

    An operation has timed out.
    """


class ConnectTimeout(TimeoutException):
    """
    Timed out while connecting to the host.
    """


class ReadTimeout(TimeoutException):
    """
    Timed out while receiving data from the host.
    """


class WriteTimeout(TimeoutException):
    """
    Timed out while sending data to the host.
    """


class TotalTimeout(TimeoutException):
    """
    The whole `.send()`, redirect hops included, exceeded its time budget.
    """


# Core networking exceptions...


class NetworkError(TransportError):
    """
    The base class for network-related errors.

    An error occurred while interacting with the network.
    """


class ConnectError(NetworkError):
    """
    Failed to establish a connection.
    """


class ReadError(NetworkError):
    """
    Failed to receive data from the network.
    """


class WriteError(NetworkError):
    """
    Failed to send data through the network.
    """


class ProtocolError(TransportError):
    """
    The protocol was violated.
    """


class LocalProtocolError(ProtocolError):
    """
    A protocol was violated by the client.
    """


class RemoteProtocolError(ProtocolError):
    """
    The protocol was violated by the server.

    For example, returning malformed HTTP, or closing the connection
    before a complete response was received.
    """


class UnsupportedProtocol(TransportError):
    """
    Attempted to make a request to an unsupported protocol.

    For example issuing a request to `ftp://www.example.com`.
    """


# Other request exceptions...


class DecodingError(RequestError):
    """
    Decoding of the response failed.
    """


class DecompressionError(DecodingError):
    """
    The response declared a `Content-Encoding` but its payload could not be
    decompressed.
    """


class TooManyRedirects(RequestError):
    """
    Too many redirects.
    """


# Client errors


class HTTPStatusError(HTTPError):
    """
    The response had a status outside of the 2xx range.

    The response is fully read and decoded, so `.response.body` is available.
    """

    def __init__(
        self, message: str, *, request: RequestDescriptor, response: Response
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response


class InvalidDescriptor(Exception):
    """
    A request descriptor was rejected before any I/O was attempted.
    """


class InvalidURL(InvalidDescriptor):
    """
    URL is improperly formed or cannot be parsed.
    """


@contextlib.contextmanager
def map_exceptions(
    mapping: typing.Mapping[type[BaseException], type[RequestError]],
    *,
    request: RequestDescriptor | None = None,
) -> typing.Iterator[None]:
    """Re-raise backend exceptions as members of our hierarchy.

    Entries are tried in order, so list subclasses before their bases.
    """
    try:
        yield
    except RequestError:
        raise
    except Exception as exc:
        for from_exc, to_exc in mapping.items():
            if isinstance(exc, from_exc):
                message = str(exc) or type(exc).__name__
                raise to_exc(message, request=request) from exc
        raise
