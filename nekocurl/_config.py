from __future__ import annotations

import dataclasses
import os
import typing

from .__version__ import __version__

DEFAULT_DRIVER_ENV = "NEKOCURL_DEFAULT_DRIVER"
DEFAULT_USERAGENT_ENV = "NEKOCURL_DEFAULT_USERAGENT"

DEFAULT_DRIVER = "nekocurl"
DEFAULT_MAX_REDIRECTS = 20
PROJECT_URL = "https://github.com/CharlotteDunois/node-nekocurl"

TimeoutTypes = typing.Union[
    typing.Optional[float],
    typing.Tuple[typing.Optional[float], typing.Optional[float], typing.Optional[float]],
    "Timeout",
]

_UNSET: typing.Any = object()


class Timeout:
    """
    Timeout configuration.

    **Usage**:

    Timeout(None)               # No timeouts.
    Timeout(5.0)                # 5s timeout on connect, read and write.
    Timeout(None, connect=5.0)  # 5s timeout on connect, no other timeouts.
    Timeout(5.0, connect=10.0)  # 10s timeout on connect. 5s timeout elsewhere.
    Timeout(None, total=60.0)   # At most 60s for the whole send, redirects included.
    """

    def __init__(
        self,
        timeout: TimeoutTypes = _UNSET,
        *,
        connect: float | None = _UNSET,
        read: float | None = _UNSET,
        write: float | None = _UNSET,
        total: float | None = _UNSET,
    ) -> None:
        if isinstance(timeout, Timeout):
            # Passed as a single explicit Timeout.
            if any(value is not _UNSET for value in (connect, read, write, total)):
                raise TypeError("Cannot combine a Timeout instance with keyword timeouts.")
            self.connect: float | None = timeout.connect
            self.read: float | None = timeout.read
            self.write: float | None = timeout.write
            self.total: float | None = timeout.total
        elif isinstance(timeout, tuple):
            # Passed as a tuple.
            self.connect, self.read, self.write = timeout
            self.total = None if total is _UNSET else total
        elif timeout is _UNSET:
            self.connect = 5.0 if connect is _UNSET else connect
            self.read = 30.0 if read is _UNSET else read
            self.write = 30.0 if write is _UNSET else write
            self.total = None if total is _UNSET else total
        else:
            self.connect = timeout if connect is _UNSET else connect
            self.read = timeout if read is _UNSET else read
            self.write = timeout if write is _UNSET else write
            self.total = None if total is _UNSET else total

    def as_dict(self) -> dict[str, float | None]:
        return {
            "connect": self.connect,
            "read": self.read,
            "write": self.write,
            "total": self.total,
        }

    def __eq__(self, other: typing.Any) -> bool:
        return isinstance(other, self.__class__) and self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        if len({self.connect, self.read, self.write}) == 1 and self.total is None:
            return f"{class_name}(timeout={self.connect})"
        return (
            f"{class_name}(connect={self.connect}, "
            f"read={self.read}, write={self.write}, total={self.total})"
        )


DEFAULT_TIMEOUT_CONFIG = Timeout()


@dataclasses.dataclass(frozen=True)
class DriverOptions:
    """
    Engine-wide behaviour shared by every request sent through one engine.

    `force_accept_encoding` asks for gzip/deflate on every non-HEAD request
    that does not name its own `accept-encoding`. `preserve_query_on_relative_redirect`
    keeps the query of the current URL when a relative `Location` has neither
    a path nor a query of its own.
    """

    follow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    force_accept_encoding: bool = True
    preserve_query_on_relative_redirect: bool = False
    timeout: Timeout = dataclasses.field(default_factory=Timeout)

    def __post_init__(self) -> None:
        if not isinstance(self.timeout, Timeout):
            object.__setattr__(self, "timeout", Timeout(self.timeout))
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be zero or a positive integer.")

    @classmethod
    def from_mapping(cls, options: typing.Mapping[str, typing.Any] | None) -> DriverOptions:
        """Build options from a plain mapping, accepting camelCase keys too."""
        if not options:
            return cls()
        aliases = {
            "followRedirects": "follow_redirects",
            "maxRedirects": "max_redirects",
            "forceAcceptEncoding": "force_accept_encoding",
            "preserveQueryOnRelativeRedirect": "preserve_query_on_relative_redirect",
        }
        names = {field.name for field in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = aliases.get(key, key)
            if name not in names:
                raise ValueError(f"Unknown driver option {key!r}")
            kwargs[name] = value
        return cls(**kwargs)


def get_default_driver(available: typing.Collection[str]) -> str:
    """Pick the driver named by the environment, else the socket driver."""
    requested = os.environ.get(DEFAULT_DRIVER_ENV)
    if requested and requested in available:
        return requested
    if DEFAULT_DRIVER in available:
        return DEFAULT_DRIVER
    return next(iter(available))


def get_default_useragent() -> str | None:
    return os.environ.get(DEFAULT_USERAGENT_ENV) or None


def build_useragent(driver: str) -> str:
    return get_default_useragent() or f"Nekocurl v{__version__} {driver} ({PROJECT_URL})"
