"""
Error Handling
==============

Demonstrates nekocurl's exception hierarchy.

Exception hierarchy:
    HTTPError
    ├── HTTPStatusError        (non-2xx responses)
    └── RequestError
        ├── TransportError
        │   ├── TimeoutException
        │   │   ├── ConnectTimeout
        │   │   ├── ReadTimeout
        │   │   ├── WriteTimeout
        │   │   └── TotalTimeout
        │   ├── NetworkError
        │   │   ├── ConnectError
        │   │   ├── ReadError
        │   │   └── WriteError
        │   ├── ProtocolError
        │   │   ├── LocalProtocolError
        │   │   └── RemoteProtocolError
        │   └── UnsupportedProtocol
        ├── DecodingError
        │   └── DecompressionError
        └── TooManyRedirects
    InvalidDescriptor
    └── InvalidURL
"""

import asyncio

import nekocurl


async def main() -> None:
    # ── HTTPStatusError carries the decoded response ─────────────────────
    print("── HTTPStatusError ────────────────────────────────────────────")
    try:
        await nekocurl.Nekocurl("https://httpbin.org/status/404").send()
    except nekocurl.HTTPStatusError as exc:
        print(f"  Caught HTTPStatusError → {exc}")
        print(f"       request URL: {exc.request.url}")
        print(f"       response status: {exc.response.status_code}")
    print()

    # ── Invalid requests fail before any I/O ─────────────────────────────
    print("── InvalidURL ─────────────────────────────────────────────────")
    print(f"  is_valid_url: {nekocurl.Nekocurl.is_valid_url('ftp://example.org')}")
    try:
        nekocurl.Nekocurl("ftp://example.org")
    except nekocurl.InvalidURL as exc:
        print(f"  Caught: {exc}")
    print()

    # ── Redirect limits ──────────────────────────────────────────────────
    print("── TooManyRedirects ───────────────────────────────────────────")
    try:
        await nekocurl.Nekocurl(
            "https://httpbin.org/redirect/5", driver_options={"maxRedirects": 2}
        ).send()
    except nekocurl.TooManyRedirects as exc:
        print(f"  Caught: {exc}")
    print()

    # ── Timeout handling ─────────────────────────────────────────────────
    print("── Timeout handling ───────────────────────────────────────────")
    options = nekocurl.DriverOptions(timeout=nekocurl.Timeout(5.0, total=1.0))
    try:
        await nekocurl.Nekocurl("https://httpbin.org/delay/10", driver_options=options).send()
    except nekocurl.TimeoutException as exc:
        print(f"  Caught TimeoutException: {type(exc).__name__}")
    print()

    # ── Catch-all with HTTPError ─────────────────────────────────────────
    print("── Catch-all pattern ──────────────────────────────────────────")
    try:
        await nekocurl.Nekocurl("https://httpbin.org/status/503").send()
    except nekocurl.HTTPError as exc:
        print(f"  Caught HTTPError (base class): {type(exc).__name__}: {exc}")


if __name__ == "__main__":
    asyncio.run(main())
