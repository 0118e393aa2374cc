"""
URL parsing and resolution for request descriptors and redirect targets.

Parsing follows RFC 3986 with the relaxed WHATWG handling of hosts used by
browsers: hosts are lower-cased, IP literals are validated and international
domain names are IDNA-encoded. Components are percent-encoded where needed,
leaving existing escapes untouched.
"""

from __future__ import annotations

import ipaddress
import re
import typing

import idna

from ._exceptions import InvalidURL

MAX_URL_LENGTH = 65536

DEFAULT_PORTS = {"http": 80, "https": 443}

UNRESERVED_CHARACTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
SUB_DELIMS = "!$&'()*+,;="

PERCENT_ENCODED_REGEX = re.compile("%[A-Fa-f0-9]{2}")

_ALWAYS_EXCLUDED = (0x20, 0x22, 0x3C, 0x3E)
_PATH_EXCLUDED = _ALWAYS_EXCLUDED + (0x23, 0x3F, 0x60, 0x7B, 0x7D)
_USERINFO_EXTRA = (0x2F, 0x3B, 0x3D, 0x40, 0x5B, 0x5C, 0x5D, 0x5E, 0x7C)


def _safe_chars(*excluded: int) -> str:
    excluded_set = set(excluded)
    return "".join(chr(i) for i in range(0x20, 0x7F) if i not in excluded_set)


FRAG_SAFE = _safe_chars(*_ALWAYS_EXCLUDED, 0x60)
QUERY_SAFE = _safe_chars(*_ALWAYS_EXCLUDED, 0x23)
PATH_SAFE = _safe_chars(*_PATH_EXCLUDED)
USERINFO_SAFE = _safe_chars(*_PATH_EXCLUDED, *_USERINFO_EXTRA)

URL_REGEX = re.compile(
    r"(?:(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*):)?"
    r"(?://(?P<authority>[^/?#]*))?"
    r"(?P<path>[^?#]*)"
    r"(?:\?(?P<query>[^#]*))?"
    r"(?:#(?P<fragment>.*))?"
)

AUTHORITY_REGEX = re.compile(
    r"(?:(?P<userinfo>.*)@)?(?P<host>(\[.*\]|[^:@]*)):?(?P<port>.*)?"
)

ABSOLUTE_HTTP_URL_REGEX = re.compile(r"^https?://", re.IGNORECASE)

IPv4_STYLE_HOSTNAME = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+$")
IPv6_STYLE_HOSTNAME = re.compile(r"^\[.*\]$")


class ParseResult(typing.NamedTuple):
    scheme: str
    userinfo: str
    host: str
    port: int | None
    path: str
    query: str | None
    fragment: str | None

    @property
    def authority(self) -> str:
        return "".join([
            f"{self.userinfo}@" if self.userinfo else "",
            self.netloc,
        ])

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return host + (f":{self.port}" if self.port is not None else "")

    @property
    def effective_port(self) -> int | None:
        if self.port is not None:
            return self.port
        return DEFAULT_PORTS.get(self.scheme)

    @property
    def target(self) -> str:
        """The request-target sent on the request line (origin-form)."""
        path = self.path or "/"
        return path if self.query is None else f"{path}?{self.query}"

    def copy_with(self, **kwargs: typing.Any) -> ParseResult:
        return self._replace(**kwargs)

    def __str__(self) -> str:
        authority = self.authority
        return "".join([
            f"{self.scheme}:" if self.scheme else "",
            f"//{authority}" if authority else "",
            self.path,
            f"?{self.query}" if self.query is not None else "",
            f"#{self.fragment}" if self.fragment is not None else "",
        ])


def _validate_non_printable(value: str, label: str) -> None:
    for position, char in enumerate(value):
        if char.isascii() and not char.isprintable():
            raise InvalidURL(
                f"Invalid non-printable ASCII character in {label}, {char!r} at position {position}."
            )


def urlparse(url: str) -> ParseResult:
    if len(url) > MAX_URL_LENGTH:
        raise InvalidURL("URL too long")

    _validate_non_printable(url, "URL")

    url_dict = URL_REGEX.match(url).groupdict()  # type: ignore[union-attr]

    scheme = url_dict["scheme"] or ""
    authority = url_dict["authority"] or ""
    path = url_dict["path"] or ""
    query = url_dict["query"]
    fragment = url_dict["fragment"]

    authority_dict = AUTHORITY_REGEX.match(authority).groupdict()  # type: ignore[union-attr]

    userinfo = authority_dict["userinfo"] or ""
    host = authority_dict["host"] or ""
    port = authority_dict["port"]

    parsed_scheme = scheme.lower()
    parsed_host = encode_host(host)
    parsed_port = normalize_port(port, parsed_scheme)

    has_scheme = bool(parsed_scheme)
    has_authority = bool(userinfo or parsed_host or parsed_port is not None)

    validate_path(path, has_scheme=has_scheme, has_authority=has_authority)
    if has_scheme or has_authority:
        path = remove_dot_segments(path)

    return ParseResult(
        parsed_scheme,
        quote(userinfo, safe=USERINFO_SAFE),
        parsed_host,
        parsed_port,
        quote(path, safe=PATH_SAFE),
        None if query is None else quote(query, safe=QUERY_SAFE),
        None if fragment is None else quote(fragment, safe=FRAG_SAFE),
    )


def urljoin(base: str | ParseResult, reference: str, *, preserve_query: bool = False) -> ParseResult:
    """Resolve `reference` against `base` (RFC 3986, section 5.2).

    With `preserve_query` disabled the query of `base` is discarded before
    resolving, so it only survives when `reference` carries its own.
    """
    if isinstance(base, str):
        base = urlparse(base)
    if not preserve_query:
        base = base.copy_with(query=None)

    _validate_non_printable(reference, "URL")
    ref = URL_REGEX.match(reference).groupdict()  # type: ignore[union-attr]

    if ref["scheme"] is not None or ref["authority"] is not None:
        joined = reference if ref["scheme"] is not None else f"{base.scheme}:{reference}"
        return urlparse(joined)

    ref_path = ref["path"] or ""
    query = ref["query"]
    if not ref_path:
        path = base.path
        if query is None:
            query = base.query
    elif ref_path.startswith("/"):
        path = remove_dot_segments(ref_path)
    else:
        path = remove_dot_segments(_merge_paths(base, ref_path))

    fragment = ref["fragment"]
    return base.copy_with(
        path=quote(path, safe=PATH_SAFE),
        query=None if query is None else quote(query, safe=QUERY_SAFE),
        fragment=None if fragment is None else quote(fragment, safe=FRAG_SAFE),
    )


def is_absolute_http_url(value: str) -> bool:
    return bool(ABSOLUTE_HTTP_URL_REGEX.match(value))


def _merge_paths(base: ParseResult, ref_path: str) -> str:
    if base.host and not base.path:
        return "/" + ref_path
    directory, _, _ = base.path.rpartition("/")
    return f"{directory}/{ref_path}"


def encode_host(host: str) -> str:
    if not host:
        return ""

    if IPv4_STYLE_HOSTNAME.match(host):
        try:
            ipaddress.IPv4Address(host)
        except ipaddress.AddressValueError:
            raise InvalidURL(f"Invalid IPv4 address: {host!r}")
        return host

    if IPv6_STYLE_HOSTNAME.match(host):
        try:
            ipaddress.IPv6Address(host[1:-1])
        except ipaddress.AddressValueError:
            raise InvalidURL(f"Invalid IPv6 address: {host!r}")
        return host[1:-1]

    if host.isascii():
        whatwg_safe = '"`{}%|\\'
        return quote(host.lower(), safe=SUB_DELIMS + whatwg_safe)

    try:
        return idna.encode(host.lower()).decode("ascii")
    except idna.IDNAError:
        raise InvalidURL(f"Invalid IDNA hostname: {host!r}")


def normalize_port(port: str | None, scheme: str) -> int | None:
    if not port:
        return None
    try:
        port_as_int = int(port)
    except ValueError:
        raise InvalidURL(f"Invalid port: {port!r}")
    if not 0 <= port_as_int <= 65535:
        raise InvalidURL(f"Invalid port: {port!r}")
    return None if port_as_int == DEFAULT_PORTS.get(scheme) else port_as_int


def validate_path(path: str, has_scheme: bool, has_authority: bool) -> None:
    if has_authority and path and not path.startswith("/"):
        raise InvalidURL("For absolute URLs, path must be empty or begin with '/'")
    if not has_scheme and not has_authority:
        if path.startswith("//"):
            raise InvalidURL("Relative URLs cannot have a path starting with '//'")
        if path.startswith(":"):
            raise InvalidURL("Relative URLs cannot have a path starting with ':'")


def remove_dot_segments(path: str) -> str:
    if "." not in path:
        return path
    segments = path.split("/")
    if "." not in segments and ".." not in segments:
        return path
    output: list[str] = []
    for segment in segments:
        if segment == "..":
            if output and output != [""]:
                output.pop()
        elif segment != ".":
            output.append(segment)
    if segments[-1] in (".", ".."):
        output.append("")
    result = "/".join(output)
    if path.startswith("/") and not result.startswith("/"):
        result = "/" + result
    return result


def _percent_encode(string: str) -> str:
    return "".join(f"%{byte:02X}" for byte in string.encode("utf-8"))


def percent_encoded(string: str, safe: str) -> str:
    non_escaped = UNRESERVED_CHARACTERS + safe
    if not string.rstrip(non_escaped):
        return string
    return "".join(c if c in non_escaped else _percent_encode(c) for c in string)


def quote(string: str, safe: str) -> str:
    parts: list[str] = []
    pos = 0
    for match in re.finditer(PERCENT_ENCODED_REGEX, string):
        start, end = match.start(), match.end()
        if start != pos:
            parts.append(percent_encoded(string[pos:start], safe=safe))
        parts.append(match.group(0))
        pos = end
    if pos != len(string):
        parts.append(percent_encoded(string[pos:], safe=safe))
    return "".join(parts)
