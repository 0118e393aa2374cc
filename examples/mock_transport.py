"""
Mock Transport
==============

Demonstrates ``MockTransport`` for tests: requests are answered in memory by a
handler, while redirects, decompression and body decoding still run.
"""

import asyncio
import gzip

import nekocurl


def handler(request: nekocurl.RequestDescriptor) -> nekocurl.RawResponse:
    if request.parsed_url.path == "/old":
        return nekocurl.RawResponse(301, headers={"location": "/new"})
    return nekocurl.RawResponse(
        200,
        headers={"content-type": "application/json", "content-encoding": "gzip"},
        content=gzip.compress(b'{"moved": true}'),
    )


async def main() -> None:
    transport = nekocurl.MockTransport(handler)
    response = await nekocurl.request("GET", "https://example.org/old", transport=transport)

    print(f"  {response!r} from {response.url}")
    print(f"  body: {response.body}")
    print(f"  requests seen: {[request.url for request in transport.requests]}")


if __name__ == "__main__":
    asyncio.run(main())
