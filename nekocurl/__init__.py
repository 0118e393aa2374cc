from .__version__ import __description__, __title__, __version__
from ._client import DRIVERS, Nekocurl, request
from ._config import DEFAULT_TIMEOUT_CONFIG, DriverOptions, Timeout
from ._engine import RequestEngine
from ._exceptions import (
    ConnectError,
    ConnectTimeout,
    DecodingError,
    DecompressionError,
    HTTPError,
    HTTPStatusError,
    InvalidDescriptor,
    InvalidURL,
    LocalProtocolError,
    NetworkError,
    ProtocolError,
    ReadError,
    ReadTimeout,
    RemoteProtocolError,
    RequestError,
    TimeoutException,
    TooManyRedirects,
    TotalTimeout,
    TransportError,
    UnsupportedProtocol,
    WriteError,
    WriteTimeout,
)
from ._models import FileAttachment, Headers, Outcome, RequestDescriptor, Response, StreamResponse
from ._multipart import MultipartEncoder
from ._redirects import resolve_redirect
from ._transports import (
    AsyncBaseTransport,
    HTTPXTransport,
    MockTransport,
    RawResponse,
    SocketTransport,
)

try:
    from .cli import main
except ImportError:

    def main() -> None:  # type: ignore[misc]
        import sys

        print(
            'The "nekocurl" command requires the CLI extra. '
            'Install it with: pip install "nekocurl[cli]"',
            file=sys.stderr,
        )
        sys.exit(1)


_EXCLUDED_FROM_ALL = {"cli", "main"}

_members = [
    member
    for member in list(vars().keys())
    if (
        not member.startswith("_")
        or member in ["__description__", "__title__", "__version__"]
    )
    and member not in _EXCLUDED_FROM_ALL
]

__all__ = sorted(_members, key=str.casefold)  # pyright: ignore[reportUnsupportedDunderAll]
