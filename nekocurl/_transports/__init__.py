from .base import AsyncBaseTransport, RawResponse
from .httpx import HTTPXTransport
from .mock import MockTransport
from .socket import SocketTransport

__all__ = [
    "AsyncBaseTransport",
    "HTTPXTransport",
    "MockTransport",
    "RawResponse",
    "SocketTransport",
]
