"""
Basic Requests
==============

Demonstrates the ``Nekocurl`` builder: GET, HEAD and POST requests, decoded
bodies, and choosing a driver.
"""

import asyncio

import nekocurl


async def main() -> None:
    # ── GET, body only ───────────────────────────────────────────────────
    print("── GET ────────────────────────────────────────────────────────")
    body = await nekocurl.Nekocurl("https://httpbin.org/get").send()
    print(f"  origin: {body['origin']}")
    print()

    # ── HEAD returns the response headers ────────────────────────────────
    print("── HEAD ───────────────────────────────────────────────────────")
    headers = await nekocurl.Nekocurl("https://httpbin.org/get", method="HEAD").send()
    print(f"  content-type: {headers['content-type']}")
    print()

    # ── POST JSON, full response ─────────────────────────────────────────
    print("── POST JSON ──────────────────────────────────────────────────")
    response = await (
        nekocurl.Nekocurl("https://httpbin.org/post", method="POST", json=True)
        .set_header("X-Example", "basic-requests")
        .set_data('{"message": "Hello from nekocurl!"}')
        .send(full_response=True)
    )
    print(f"  {response!r}")
    print(f"  echoed json: {response.body['json']}")
    print()

    # ── Drivers ──────────────────────────────────────────────────────────
    print("── Drivers ────────────────────────────────────────────────────")
    print(f"  available: {nekocurl.Nekocurl.available_drivers()}")
    print(f"  default:   {nekocurl.Nekocurl.default_driver()}")
    body = await nekocurl.Nekocurl("https://httpbin.org/user-agent", driver="httpx").send()
    print(f"  user agent via httpx: {body['user-agent']}")


if __name__ == "__main__":
    asyncio.run(main())
