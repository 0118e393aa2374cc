import asyncio
import gzip
import json
import os
import threading
import time
import typing
import zlib

import pytest
import trustme
from starlette.datastructures import UploadFile
from starlette.requests import Request
from uvicorn.config import Config
from uvicorn.server import Server


# The socket driver and the engine are written for asyncio only.
@pytest.fixture
def anyio_backend():
    return "asyncio"


ENVIRONMENT_VARIABLES = {
    "NEKOCURL_DEFAULT_DRIVER",
    "NEKOCURL_DEFAULT_USERAGENT",
    "SSL_CERT_FILE",
    "SSL_CERT_DIR",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "NO_PROXY",
}


@pytest.fixture(scope="function", autouse=True)
def clean_environ():
    """Keeps os.environ clean for every test without having to mock os.environ"""
    original_environ = os.environ.copy()
    os.environ.clear()
    os.environ.update(
        {
            k: v
            for k, v in original_environ.items()
            if k not in ENVIRONMENT_VARIABLES and k.upper() not in ENVIRONMENT_VARIABLES
        }
    )
    yield
    os.environ.clear()
    os.environ.update(original_environ)


Message = typing.Dict[str, typing.Any]
Receive = typing.Callable[[], typing.Awaitable[Message]]
Send = typing.Callable[
    [typing.Dict[str, typing.Any]], typing.Coroutine[None, None, None]
]
Scope = typing.Dict[str, typing.Any]


async def app(scope: Scope, receive: Receive, send: Send) -> None:
    assert scope["type"] == "http"
    path = scope["path"]
    if path == "/head":
        await head(scope, receive, send)
    elif path == "/get":
        await echo_request(scope, receive, send)
    elif path == "/post":
        await post(scope, receive, send)
    elif path == "/compression-url":
        await compression_url(scope, receive, send)
    elif path == "/deflate":
        await deflate(scope, receive, send)
    elif path == "/redirect":
        await redirect(scope, receive, send, 302, b"/head")
    elif path == "/redirect-absolute":
        location = f"http://{_host(scope)}/head".encode()
        await redirect(scope, receive, send, 302, location)
    elif path == "/redirect-relative":
        await redirect(scope, receive, send, 301, b"get")
    elif path.startswith("/redirect-status/"):
        status = int(path.rsplit("/", 1)[1])
        await redirect(scope, receive, send, status, b"/get")
    elif path == "/redirect-see-other":
        await redirect(scope, receive, send, 303, b"/see-other")
    elif path == "/redirect-loop":
        await redirect(scope, receive, send, 302, b"/redirect-loop")
    elif path == "/see-other":
        await see_other(scope, receive, send)
    elif path == "/fail":
        await fail(scope, receive, send)
    elif path == "/slow_response":
        await slow_response(scope, receive, send)
    elif path == "/chunked":
        await chunked(scope, receive, send)
    elif path == "/json":
        await send_body(send, 200, b'{"Hello": "world!"}', b"application/json")
    elif path == "/invalid-json":
        await send_body(send, 200, b"{not json", b"application/json")
    elif path == "/binary":
        await send_body(send, 200, bytes(range(256)), b"application/octet-stream")
    else:
        await send_body(send, 404, b"Not Found", b"text/plain")


def _host(scope: Scope) -> str:
    host, port = scope["server"]
    return f"{host}:{port}"


async def read_body(receive: Receive) -> bytes:
    body = b""
    more_body = True

    while more_body:
        message = await receive()
        body += message.get("body", b"")
        more_body = message.get("more_body", False)
    return body


async def send_body(
    send: Send,
    status: int,
    body: bytes,
    content_type: bytes,
    headers: typing.Optional[typing.List[typing.List[bytes]]] = None,
) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [[b"content-type", content_type], *(headers or [])],
        }
    )
    await send({"type": "http.response.body", "body": body})


async def head(scope: Scope, receive: Receive, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [
                [b"content-type", b"text/plain"],
                [b"x-request-method", scope["method"].encode()],
            ],
        }
    )
    await send({"type": "http.response.body", "body": b"" if scope["method"] == "HEAD" else b"OK"})


async def echo_request(scope: Scope, receive: Receive, send: Send) -> None:
    body = await read_body(receive)
    payload = {
        "method": scope["method"],
        "query": scope["query_string"].decode(),
        "headers": {name.decode(): value.decode() for name, value in scope["headers"]},
        "body": body.decode("utf-8", errors="replace"),
    }
    await send_body(send, 200, json.dumps(payload).encode(), b"application/json")


async def post(scope: Scope, receive: Receive, send: Send) -> None:
    request = Request(scope, receive)
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        files = []
        fields = []
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                data = await value.read()
                files.append(
                    {
                        "name": name,
                        "filename": value.filename,
                        "content_type": value.content_type,
                        "data": data.decode("latin-1"),
                    }
                )
            else:
                fields.append({"name": name, "value": value})
        await form.close()
        payload = {"files": files, "fields": fields}
    else:
        body = await request.body()
        payload = {
            "method": scope["method"],
            "content_type": content_type,
            "body": body.decode("utf-8", errors="replace"),
        }
    await send_body(send, 200, json.dumps(payload).encode(), b"application/json")


async def compression_url(scope: Scope, receive: Receive, send: Send) -> None:
    await send_body(
        send,
        200,
        gzip.compress(scope["query_string"]),
        b"application/x-www-form-urlencoded",
        headers=[[b"content-encoding", b"gzip"]],
    )


async def deflate(scope: Scope, receive: Receive, send: Send) -> None:
    await send_body(
        send,
        200,
        zlib.compress(b"Hello, deflated world!"),
        b"text/plain",
        headers=[[b"content-encoding", b"deflate"]],
    )


async def redirect(
    scope: Scope, receive: Receive, send: Send, status: int, location: bytes
) -> None:
    await read_body(receive)
    await send(
        {
            "type": "http.response.start",
            "status": status,
            "headers": [[b"location", location], [b"content-type", b"text/plain"]],
        }
    )
    await send({"type": "http.response.body", "body": b"Redirecting"})


async def see_other(scope: Scope, receive: Receive, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": 204,
            "headers": [[b"x-request-method", scope["method"].encode()]],
        }
    )
    await send({"type": "http.response.body", "body": b""})


async def fail(scope: Scope, receive: Receive, send: Send) -> None:
    await send_body(send, 405, b"Method Not Allowed", b"text/plain")


async def slow_response(scope: Scope, receive: Receive, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [[b"content-type", b"text/plain"]],
        }
    )
    await asyncio.sleep(1.0)  # Allow triggering a read timeout.
    await send({"type": "http.response.body", "body": b"Hello, world!"})


async def chunked(scope: Scope, receive: Receive, send: Send) -> None:
    # No content-length, so uvicorn frames the body with chunked encoding.
    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [[b"content-type", b"text/plain"]],
        }
    )
    for part in (b"Hello, ", b"chunked ", b"world!"):
        await send({"type": "http.response.body", "body": part, "more_body": True})
    await send({"type": "http.response.body", "body": b""})


@pytest.fixture(scope="session")
def cert_authority():
    return trustme.CA()


@pytest.fixture(scope="session")
def localhost_cert(cert_authority):
    return cert_authority.issue_cert("localhost")


@pytest.fixture(scope="session")
def cert_pem_file(localhost_cert):
    with localhost_cert.cert_chain_pems[0].tempfile() as tmp:
        yield tmp


@pytest.fixture(scope="session")
def cert_private_key_file(localhost_cert):
    with localhost_cert.private_key_pem.tempfile() as tmp:
        yield tmp


class TestServer(Server):
    __test__ = False

    def install_signal_handlers(self) -> None:
        # Disable the default installation of handlers for signals such as SIGTERM,
        # because it can only be done in the main thread.
        pass

    @property
    def url(self) -> str:
        protocol = "https" if self.config.is_ssl else "http"
        port = self.servers[0].sockets[0].getsockname()[1]
        return f"{protocol}://{self.config.host}:{port}"


def serve_in_thread(server: TestServer) -> typing.Iterator[TestServer]:
    thread = threading.Thread(target=server.run)
    thread.start()
    try:
        while not server.started:
            time.sleep(1e-3)
        yield server
    finally:
        server.should_exit = True
        thread.join()


@pytest.fixture(scope="session")
def server() -> typing.Iterator[TestServer]:
    config = Config(app=app, lifespan="off", loop="asyncio", host="127.0.0.1", port=0)
    server = TestServer(config=config)
    yield from serve_in_thread(server)


@pytest.fixture(scope="session")
def https_server(
    cert_pem_file: str, cert_private_key_file: str
) -> typing.Iterator[TestServer]:
    config = Config(
        app=app,
        lifespan="off",
        loop="asyncio",
        ssl_certfile=cert_pem_file,
        ssl_keyfile=cert_private_key_file,
        host="localhost",
        port=0,
    )
    server = TestServer(config=config)
    yield from serve_in_thread(server)
