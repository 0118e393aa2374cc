"""
Streaming
=========

Demonstrates ``send_passthrough()``, which yields the response as soon as the
headers arrive. The status is not checked, and the body is decoded chunk by
chunk while it is read.
"""

import asyncio

import nekocurl


async def main() -> None:
    # ── Iterate over the decompressed body ───────────────────────────────
    print("── aiter_bytes() ──────────────────────────────────────────────")
    client = nekocurl.Nekocurl("https://httpbin.org/gzip")
    async with client.send_passthrough() as response:
        print(f"  status: {response.status_code}")
        print(f"  content-encoding: {response.headers.get('content-encoding')}")
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
        print(f"  {total} bytes after decompression")
    print()

    # ── Read the rest into a full Response ───────────────────────────────
    print("── aread() ────────────────────────────────────────────────────")
    async with nekocurl.Nekocurl("https://httpbin.org/status/418").send_passthrough() as response:
        result = await response.aread()
        print(f"  {result!r}, outcome: {result.outcome.value}")


if __name__ == "__main__":
    asyncio.run(main())
