from __future__ import annotations

import typing

from ._exceptions import InvalidURL, RemoteProtocolError
from ._models import RequestDescriptor
from ._urlparse import is_absolute_http_url, urljoin

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})

# Headers describing the body; they go whenever the body is dropped.
BODY_HEADERS = ("content-type", "content-length", "transfer-encoding")


def redirect_method(method: str, status_code: int) -> str:
    """
    When being redirected we may want to change the method of the request
    based on certain specs or browser behavior.
    """
    if status_code == 303:
        return "GET"
    if status_code in (301, 302) and method != "HEAD":
        return "GET"
    return method


def drops_body(status_code: int) -> bool:
    return status_code in (301, 302, 303)


def redirect_url(
    request: RequestDescriptor, location: str, *, preserve_query: bool = False
) -> str:
    """
    Return the URL for the redirect to follow.
    """
    try:
        if is_absolute_http_url(location):
            return location
        return str(urljoin(request.parsed_url, location, preserve_query=preserve_query))
    except InvalidURL as exc:
        raise RemoteProtocolError(
            f"Invalid URL in location header: {location!r}", request=request
        ) from exc


def resolve_redirect(
    request: RequestDescriptor,
    status_code: int,
    headers: typing.Mapping[str, str],
    *,
    preserve_query: bool = False,
) -> RequestDescriptor | None:
    """Decide whether a response redirects, and to what.

    Returns the descriptor for the next hop, or `None` when the response is
    terminal. The given descriptor is never modified.
    """
    if not request.follow_redirects or status_code not in REDIRECT_STATUS_CODES:
        return None

    location = headers.get("location")
    if not location:
        return None

    url = redirect_url(request, location.strip(), preserve_query=preserve_query)
    changes: dict[str, typing.Any] = {
        "url": url,
        "method": redirect_method(request.method, status_code),
    }
    request_headers = request.headers
    if drops_body(status_code):
        changes["body"] = None
        changes["files"] = ()
        request_headers = request_headers.remove(*BODY_HEADERS)

    try:
        next_request = request.copy_with(**changes)
    except InvalidURL as exc:
        raise RemoteProtocolError(
            f"Invalid URL in location header: {location!r}", request=request
        ) from exc

    if next_request.parsed_url.netloc != request.parsed_url.netloc:
        # Don't carry credentials to another host.
        request_headers = request_headers.remove("authorization")
    return next_request.copy_with(headers=request_headers)
