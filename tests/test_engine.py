import asyncio
import gzip
import json

import pytest

import nekocurl


def text_response(status_code, body=b"", headers=None, **kwargs):
    return nekocurl.RawResponse(status_code, headers=headers or {}, content=body, **kwargs)


def json_response(data, status_code=200):
    return text_response(
        status_code, json.dumps(data).encode(), {"content-type": "application/json"}
    )


def routes(table):
    """A handler answering by request path, echoing the request when the route is a callable."""

    def handler(request):
        response = table[request.parsed_url.path]
        return response(request) if callable(response) else response

    return handler


def echo(request):
    return json_response(
        {
            "method": request.method,
            "url": request.url,
            "headers": dict(request.headers),
            "body": (request.body or b"").decode("latin-1"),
        }
    )


@pytest.mark.anyio
async def test_send_decodes_json():
    transport = nekocurl.MockTransport(lambda request: json_response({"ok": True}))
    engine = nekocurl.RequestEngine(transport)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert response.status_code == 200
    assert response.body == {"ok": True}
    assert response.outcome is nekocurl.Outcome.SUCCESS
    assert response.request.url == "https://example.org/"


@pytest.mark.anyio
async def test_send_forces_accept_encoding():
    transport = nekocurl.MockTransport(echo)
    engine = nekocurl.RequestEngine(transport)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert response.body["headers"]["accept-encoding"] == "gzip, deflate"


@pytest.mark.anyio
async def test_send_keeps_caller_accept_encoding():
    transport = nekocurl.MockTransport(echo)
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor(
        "https://example.org/", headers={"accept-encoding": "identity"}
    )

    response = await engine.send(request)

    assert response.body["headers"]["accept-encoding"] == "identity"


@pytest.mark.anyio
async def test_head_does_not_ask_for_compression():
    transport = nekocurl.MockTransport(lambda request: text_response(200))
    engine = nekocurl.RequestEngine(transport)

    await engine.send(nekocurl.RequestDescriptor("https://example.org/", method="HEAD"))

    assert "accept-encoding" not in transport.requests[0].headers


@pytest.mark.anyio
async def test_accept_encoding_policy_can_be_disabled():
    transport = nekocurl.MockTransport(echo)
    options = nekocurl.DriverOptions(force_accept_encoding=False)
    engine = nekocurl.RequestEngine(transport, options)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert "accept-encoding" not in response.body["headers"]


@pytest.mark.anyio
async def test_files_replace_the_body_with_multipart():
    transport = nekocurl.MockTransport(echo)
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor(
        "https://example.org/upload",
        method="POST",
        headers={"content-type": "text/plain"},
        body=b"ignored",
        files=[nekocurl.FileAttachment("upload", b"file data", "a.txt")],
    )

    await engine.send(request)

    sent = transport.requests[0]
    assert sent.files == ()
    assert sent.headers["content-type"].startswith("multipart/form-data; boundary=")
    assert sent.headers["content-length"] == str(len(sent.body))
    assert b"ignored" not in sent.body
    assert b'filename="a.txt"' in sent.body
    # The caller's descriptor is left as it was.
    assert request.body == b"ignored"
    assert request.headers["content-type"] == "text/plain"


@pytest.mark.anyio
async def test_gzip_form_body():
    transport = nekocurl.MockTransport(
        lambda request: text_response(
            200,
            gzip.compress(b"Nekocurl=is+amazing"),
            {"content-type": "application/x-www-form-urlencoded", "content-encoding": "gzip"},
        )
    )
    engine = nekocurl.RequestEngine(transport)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert response.body == {"Nekocurl": "is amazing"}
    assert response.raw_body == b"Nekocurl=is+amazing"


@pytest.mark.anyio
async def test_decompression_error():
    transport = nekocurl.MockTransport(
        lambda request: text_response(200, b"not gzip", {"content-encoding": "gzip"})
    )
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor("https://example.org/")

    with pytest.raises(nekocurl.DecompressionError) as exc_info:
        await engine.send(request)
    assert exc_info.value.request is request


@pytest.mark.anyio
async def test_truncated_gzip_body_raises():
    compressed = gzip.compress(json.dumps({"items": list(range(100))}).encode())
    transport = nekocurl.MockTransport(
        lambda request: text_response(
            200,
            compressed[: len(compressed) // 2],
            {"content-type": "application/json", "content-encoding": "gzip"},
        )
    )
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor("https://example.org/")

    with pytest.raises(nekocurl.DecompressionError) as exc_info:
        await engine.send(request)
    assert exc_info.value.request is request


@pytest.mark.anyio
async def test_gzip_json_body():
    transport = nekocurl.MockTransport(
        lambda request: text_response(
            200,
            gzip.compress(b'{"a": [1, 2]}'),
            {"content-type": "application/json; charset=utf-8", "content-encoding": "gzip"},
        )
    )
    engine = nekocurl.RequestEngine(transport)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert response.raw_body == b'{"a": [1, 2]}'
    assert response.text == '{"a": [1, 2]}'
    assert response.body == {"a": [1, 2]}


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status_code,headers",
    [
        (200, {"content-encoding": "gzip", "content-length": "0"}),
        (204, {"content-encoding": "gzip"}),
    ],
)
async def test_empty_body_is_never_decompressed(status_code, headers):
    transport = nekocurl.MockTransport(
        lambda request: text_response(status_code, b"not gzip at all", headers)
    )
    engine = nekocurl.RequestEngine(transport)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert response.status_code == status_code
    assert response.raw_body == b""
    assert response.body == b""


@pytest.mark.anyio
async def test_http_error_carries_decoded_response():
    transport = nekocurl.MockTransport(
        lambda request: json_response({"error": "nope"}, status_code=405)
    )
    engine = nekocurl.RequestEngine(transport)

    with pytest.raises(nekocurl.HTTPStatusError) as exc_info:
        await engine.send(nekocurl.RequestDescriptor("https://example.org/fail"))

    exc = exc_info.value
    assert str(exc) == "405 Method Not Allowed"
    assert exc.response.status_code == 405
    assert exc.response.body == {"error": "nope"}
    assert exc.response.outcome is nekocurl.Outcome.HTTP_ERROR
    assert exc.request.url == "https://example.org/fail"


@pytest.mark.anyio
async def test_redirects_are_followed():
    transport = nekocurl.MockTransport(
        routes(
            {
                "/start": text_response(302, b"moved", {"location": "/middle"}),
                "/middle": text_response(307, headers={"location": "https://other.example.org/end"}),
                "/end": echo,
            }
        )
    )
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor("https://example.org/start", method="POST", body=b"x")

    response = await engine.send(request)

    assert response.body["url"] == "https://other.example.org/end"
    assert response.body["method"] == "GET"
    assert response.body["body"] == ""
    assert response.request.url == "https://other.example.org/end"
    assert [r.url for r in transport.requests] == [
        "https://example.org/start",
        "https://example.org/middle",
        "https://other.example.org/end",
    ]
    assert request.method == "POST"


@pytest.mark.anyio
async def test_redirect_bodies_are_closed():
    closed = []

    async def on_close():
        closed.append(True)

    def handler(request):
        if request.parsed_url.path == "/start":
            return text_response(302, b"moved", {"location": "/end"}, on_close=on_close)
        return text_response(200, b"done", on_close=on_close)

    engine = nekocurl.RequestEngine(nekocurl.MockTransport(handler))
    await engine.send(nekocurl.RequestDescriptor("https://example.org/start"))

    assert closed == [True, True]


@pytest.mark.anyio
async def test_redirects_not_followed_when_disabled_by_options():
    transport = nekocurl.MockTransport(lambda request: text_response(302, headers={"location": "/"}))
    engine = nekocurl.RequestEngine(transport, nekocurl.DriverOptions(follow_redirects=False))

    with pytest.raises(nekocurl.HTTPStatusError) as exc_info:
        await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert exc_info.value.response.status_code == 302
    assert len(transport.requests) == 1


@pytest.mark.anyio
async def test_redirects_not_followed_when_disabled_on_request():
    transport = nekocurl.MockTransport(lambda request: text_response(302, headers={"location": "/"}))
    engine = nekocurl.RequestEngine(transport)
    request = nekocurl.RequestDescriptor("https://example.org/", follow_redirects=False)

    async with engine.stream(request) as response:
        assert response.status_code == 302
        assert response.headers["location"] == "/"


@pytest.mark.anyio
async def test_too_many_redirects():
    transport = nekocurl.MockTransport(
        lambda request: text_response(302, headers={"location": "/loop"})
    )
    engine = nekocurl.RequestEngine(transport, nekocurl.DriverOptions(max_redirects=3))

    with pytest.raises(nekocurl.TooManyRedirects):
        await engine.send(nekocurl.RequestDescriptor("https://example.org/loop"))

    assert len(transport.requests) == 4


@pytest.mark.anyio
async def test_zero_max_redirects():
    transport = nekocurl.MockTransport(
        lambda request: text_response(301, headers={"location": "/other"})
    )
    engine = nekocurl.RequestEngine(transport, nekocurl.DriverOptions(max_redirects=0))

    with pytest.raises(nekocurl.TooManyRedirects):
        await engine.send(nekocurl.RequestDescriptor("https://example.org/"))


@pytest.mark.anyio
@pytest.mark.parametrize(
    "preserve_query,expected",
    [
        (False, "https://example.org/a#frag"),
        (True, "https://example.org/a?q=1#frag"),
    ],
)
async def test_preserve_query_policy(preserve_query, expected):
    def handler(request):
        if request.parsed_url.fragment is None:
            return text_response(302, headers={"location": "#frag"})
        return echo(request)

    options = nekocurl.DriverOptions(preserve_query_on_relative_redirect=preserve_query)
    engine = nekocurl.RequestEngine(nekocurl.MockTransport(handler), options)

    response = await engine.send(nekocurl.RequestDescriptor("https://example.org/a?q=1"))

    assert response.body["url"] == expected


@pytest.mark.anyio
async def test_transport_error_gets_request_attached():
    def handler(request):
        raise nekocurl.ConnectError("Connection refused")

    request = nekocurl.RequestDescriptor("https://example.org/")
    engine = nekocurl.RequestEngine(nekocurl.MockTransport(handler))

    with pytest.raises(nekocurl.ConnectError) as exc_info:
        await engine.send(request)

    assert exc_info.value.request is request


@pytest.mark.anyio
async def test_total_timeout():
    async def handler(request):
        await asyncio.sleep(1.0)
        return text_response(200)

    engine = nekocurl.RequestEngine(
        nekocurl.MockTransport(handler),
        nekocurl.DriverOptions(timeout=nekocurl.Timeout(None, total=0.05)),
    )

    with pytest.raises(nekocurl.TotalTimeout):
        await engine.send(nekocurl.RequestDescriptor("https://example.org/"))


@pytest.mark.anyio
async def test_stream_yields_before_body_is_read():
    chunks = [b"first ", b"second"]

    async def body():
        for chunk in chunks:
            yield chunk

    transport = nekocurl.MockTransport(
        lambda request: nekocurl.RawResponse(200, headers={"x-a": "1"}, stream=body())
    )
    engine = nekocurl.RequestEngine(transport)

    async with engine.stream(nekocurl.RequestDescriptor("https://example.org/")) as response:
        assert response.status_code == 200
        assert response.headers["x-a"] == "1"
        received = [chunk async for chunk in response.aiter_bytes()]

    assert received == chunks
    assert response.num_bytes_downloaded == len(b"first second")


@pytest.mark.anyio
async def test_stream_aread():
    transport = nekocurl.MockTransport(lambda request: json_response({"a": 1}, status_code=500))
    engine = nekocurl.RequestEngine(transport)

    async with engine.stream(nekocurl.RequestDescriptor("https://example.org/")) as response:
        result = await response.aread()

    assert result.body == {"a": 1}
    with pytest.raises(nekocurl.HTTPStatusError):
        result.raise_for_status()


@pytest.mark.anyio
async def test_stream_can_only_be_consumed_once():
    transport = nekocurl.MockTransport(lambda request: text_response(200, b"data"))
    engine = nekocurl.RequestEngine(transport)

    async with engine.stream(nekocurl.RequestDescriptor("https://example.org/")) as response:
        await response.aread()
        with pytest.raises(RuntimeError):
            await response.aread()


@pytest.mark.anyio
async def test_concurrent_sends_are_independent():
    async def handler(request):
        await asyncio.sleep(0.01)
        return echo(request)

    engine = nekocurl.RequestEngine(nekocurl.MockTransport(handler))
    requests = [
        nekocurl.RequestDescriptor(f"https://example.org/{i}", headers={"x-id": str(i)})
        for i in range(10)
    ]

    responses = await asyncio.gather(*(engine.send(request) for request in requests))

    for i, response in enumerate(responses):
        assert response.body["url"] == f"https://example.org/{i}"
        assert response.body["headers"]["x-id"] == str(i)


@pytest.mark.anyio
async def test_engine_closes_transport():
    closed = []

    class ClosingTransport(nekocurl.MockTransport):
        async def aclose(self):
            closed.append(True)

    async with nekocurl.RequestEngine(ClosingTransport(echo)) as engine:
        await engine.send(nekocurl.RequestDescriptor("https://example.org/"))

    assert closed == [True]
