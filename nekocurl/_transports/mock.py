from __future__ import annotations

import inspect
import typing

from .._config import Timeout
from .._models import RequestDescriptor
from .base import AsyncBaseTransport, RawResponse

__all__ = ["MockTransport"]

Handler = typing.Callable[
    [RequestDescriptor], typing.Union[RawResponse, typing.Awaitable[RawResponse]]
]


class MockTransport(AsyncBaseTransport):
    """
    Answer requests in memory with a handler, for tests.

    Every descriptor that reaches the transport is recorded in `requests`.
    """

    name = "mock"

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: list[RequestDescriptor] = []

    async def execute(self, request: RequestDescriptor, timeout: Timeout) -> RawResponse:
        self.requests.append(request)
        response = self.handler(request)
        if inspect.isawaitable(response):
            response = await response
        return typing.cast(RawResponse, response)
