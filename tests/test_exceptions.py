from __future__ import annotations

import asyncio
import ssl
import typing

import pytest

import nekocurl
from nekocurl._exceptions import map_exceptions

if typing.TYPE_CHECKING:  # pragma: no cover
    from conftest import TestServer


def test_exception_hierarchy() -> None:
    assert issubclass(nekocurl.RequestError, nekocurl.HTTPError)
    assert issubclass(nekocurl.HTTPStatusError, nekocurl.HTTPError)
    assert issubclass(nekocurl.TotalTimeout, nekocurl.TimeoutException)
    assert issubclass(nekocurl.ConnectTimeout, nekocurl.TransportError)
    assert issubclass(nekocurl.RemoteProtocolError, nekocurl.ProtocolError)
    assert issubclass(nekocurl.DecompressionError, nekocurl.DecodingError)
    assert issubclass(nekocurl.TooManyRedirects, nekocurl.RequestError)
    assert issubclass(nekocurl.InvalidURL, nekocurl.InvalidDescriptor)
    assert not issubclass(nekocurl.InvalidDescriptor, nekocurl.HTTPError)


def test_request_attribute() -> None:
    # Exception without request attribute
    exc = nekocurl.ReadTimeout("Read operation timed out")
    with pytest.raises(RuntimeError):
        exc.request  # noqa: B018

    # Exception with request attribute
    request = nekocurl.RequestDescriptor("https://www.example.com")
    exc = nekocurl.ReadTimeout("Read operation timed out", request=request)
    assert exc.request == request


def test_status_error_carries_the_response() -> None:
    request = nekocurl.RequestDescriptor("https://www.example.com")
    response = nekocurl.Response(500, raw_body=b"oops", request=request)

    with pytest.raises(nekocurl.HTTPStatusError) as exc_info:
        response.raise_for_status()

    assert exc_info.value.request is request
    assert exc_info.value.response is response
    assert str(exc_info.value) == "500 Internal Server Error"


def test_map_exceptions() -> None:
    request = nekocurl.RequestDescriptor("https://www.example.com")
    mapping = {
        ConnectionRefusedError: nekocurl.ConnectError,
        asyncio.TimeoutError: nekocurl.ReadTimeout,
        OSError: nekocurl.NetworkError,
    }

    with pytest.raises(nekocurl.ConnectError) as exc_info:
        with map_exceptions(mapping, request=request):
            raise ConnectionRefusedError("refused")
    assert str(exc_info.value) == "refused"
    assert exc_info.value.request is request
    assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)

    with pytest.raises(nekocurl.ReadTimeout, match="TimeoutError"):
        with map_exceptions(mapping, request=request):
            raise asyncio.TimeoutError()

    with pytest.raises(nekocurl.NetworkError):
        with map_exceptions(mapping, request=request):
            raise ssl.SSLError("bad record")


def test_map_exceptions_leaves_other_errors_alone() -> None:
    with pytest.raises(KeyError):
        with map_exceptions({OSError: nekocurl.NetworkError}):
            raise KeyError("missing")

    original = nekocurl.RemoteProtocolError("already ours")
    with pytest.raises(nekocurl.RemoteProtocolError) as exc_info:
        with map_exceptions({Exception: nekocurl.NetworkError}):
            raise original
    assert exc_info.value is original


@pytest.mark.anyio
async def test_transport_exception_mapping(server: TestServer) -> None:
    engine = nekocurl.RequestEngine(
        nekocurl.SocketTransport(),
        nekocurl.DriverOptions(timeout=nekocurl.Timeout(5, read=0.01)),
    )

    with pytest.raises(nekocurl.ReadTimeout):
        await engine.send(nekocurl.RequestDescriptor(server.url + "/slow_response"))

