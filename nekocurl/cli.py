from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import typing

import click

from ._client import DRIVERS, Nekocurl
from ._config import DEFAULT_MAX_REDIRECTS, DriverOptions, Timeout
from ._exceptions import HTTPError, HTTPStatusError, InvalidDescriptor
from ._models import FileAttachment, RequestDescriptor, Response

# ---------------------------------------------------------------------------
# Rich output helpers (graceful fallback when rich is not installed)
# ---------------------------------------------------------------------------

try:
    from rich.console import Console
    from rich.syntax import Syntax
    from rich.text import Text

    HAS_RICH = True
except ImportError:  # pragma: no cover
    HAS_RICH = False

logger = logging.getLogger("nekocurl.cli")


def _status_color(status_code: int) -> str:
    """Return a rich color name based on HTTP status category."""
    if status_code < 200:
        return "cyan"
    elif status_code < 300:
        return "green"
    elif status_code < 400:
        return "yellow"
    elif status_code < 500:
        return "red"
    else:
        return "bold red"


def is_binary_content(content: bytes) -> bool:
    return b"\0" in content


def is_binary_content_type(content_type: str) -> bool:
    text_types = (
        "text/",
        "application/json",
        "application/xml",
        "application/javascript",
        "application/x-www-form-urlencoded",
    )
    ct = content_type.lower().split(";")[0].strip()
    return not any(ct.startswith(t) for t in text_types) and ct != ""


def _format_json(response: Response) -> str | None:
    if "application/json" not in response.headers.get("content-type", ""):
        return None
    try:
        return json.dumps(json.loads(response.text), indent=4, ensure_ascii=False)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Plain-text formatter (used with --no-color or when rich is missing)
# ---------------------------------------------------------------------------


def format_request_plain(request: RequestDescriptor) -> str:
    lines = [f"> {request.method} {request.url}"]
    lines.extend(f"> {key}: {value}" for key, value in request.headers.multi_items())
    lines.append(">")
    return "\n".join(lines)


def format_response_plain(response: Response) -> str:
    status_line = f"{response.http_version} {response.status_code} {response.status_text}".rstrip()
    lines: list[str] = [status_line]

    for key, value in response.headers.multi_items():
        lines.append(f"{key}: {value}")

    lines.append("")

    content = response.raw_body
    if content:
        content_type = response.headers.get("content-type", "")
        formatted = _format_json(response)
        if formatted is not None:
            lines.append(formatted)
        elif is_binary_content_type(content_type) or is_binary_content(content):
            lines.append(f"<{len(content)} bytes of binary data>")
        else:
            lines.append(response.text)

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Rich formatter
# ---------------------------------------------------------------------------


def print_response_rich(console: Console, response: Response) -> None:
    """Pretty-print a response using rich."""
    color = _status_color(response.status_code)

    status_line = Text()
    status_line.append(f"{response.http_version} ", style="bold dim")
    status_line.append(f"{response.status_code}", style=f"bold {color}")
    if response.status_text:
        status_line.append(f" {response.status_text}", style=color)
    console.print(status_line)

    for key, value in response.headers.multi_items():
        header_text = Text()
        header_text.append(f"{key}", style="dim cyan")
        header_text.append(": ", style="dim")
        header_text.append(value)
        console.print(header_text)

    console.print()

    content = response.raw_body
    if content:
        content_type = response.headers.get("content-type", "")
        formatted = _format_json(response)
        if formatted is not None:
            console.print(Syntax(formatted, "json", theme="monokai"))
        elif is_binary_content_type(content_type) or is_binary_content(content):
            console.print(f"[dim]<{len(content)} bytes of binary data>[/dim]")
        else:
            console.print(response.text, markup=False)


# ---------------------------------------------------------------------------
# Argument parsing helpers (curl-style -H "Key: Value" and -F name=value)
# ---------------------------------------------------------------------------


def parse_header(header: str) -> tuple[str, str]:
    """Parse a 'Key: Value' header string."""
    if ":" not in header:
        raise click.BadParameter(
            f"Invalid header format: '{header}'. Expected 'Key: Value'."
        )
    key, _, value = header.partition(":")
    return key.strip(), value.strip()


def parse_form_field(field: str) -> FileAttachment:
    """Parse 'name=value', or 'name=@path' to attach the file at path."""
    name, sep, value = field.partition("=")
    if not sep or not name:
        raise click.BadParameter(
            f"Invalid form field: '{field}'. Expected 'name=value' or 'name=@path'."
        )
    if not value.startswith("@"):
        return FileAttachment(name, value)

    path = value[1:]
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise click.BadParameter(f"Cannot read '{path}': {exc.strerror}") from exc
    return FileAttachment(name, data, os.path.basename(path))


def _echo_error(exc: Exception, use_rich: bool) -> None:
    if use_rich:
        error_text = Text()
        error_text.append(type(exc).__name__, style="bold red")
        error_text.append(f": {exc}")
        Console(stderr=True).print(error_text)
    else:
        click.echo(f"{type(exc).__name__}: {exc}")


def _echo_response(response: Response, use_rich: bool) -> None:
    if use_rich:
        print_response_rich(Console(), response)
    else:
        click.echo(format_response_plain(response))


# ---------------------------------------------------------------------------
# CLI command
# ---------------------------------------------------------------------------


@click.command(help="Send an HTTP request and print the response.")
@click.argument("url")
@click.option("-m", "--method", default="GET", help="HTTP method.")
@click.option("-d", "--data", default=None, help="Raw request body.")
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    help='Add a header, e.g. -H "Authorization: Bearer token".',
)
@click.option(
    "-F",
    "--form",
    "form",
    multiple=True,
    help="Add a multipart field, e.g. -F name=value or -F avatar=@cat.png.",
)
@click.option(
    "--driver",
    default=None,
    type=click.Choice(sorted(DRIVERS)),
    help="Driver to send the request with.",
)
@click.option(
    "--no-follow-redirects", is_flag=True, default=False, help="Do not follow redirects."
)
@click.option(
    "--max-redirects",
    type=click.IntRange(min=0),
    default=DEFAULT_MAX_REDIRECTS,
    show_default=True,
    help="Maximum number of redirects to follow.",
)
@click.option(
    "--timeout", type=float, default=None, help="Connect, read and write timeout in seconds."
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose output.")
@click.option(
    "--no-color", is_flag=True, default=False, help="Disable colored output."
)
def main(
    url: str,
    method: str,
    data: str | None,
    headers: tuple[str, ...],
    form: tuple[str, ...],
    driver: str | None,
    no_follow_redirects: bool,
    max_redirects: int,
    timeout: float | None,
    verbose: bool,
    no_color: bool,
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    use_rich = HAS_RICH and not no_color and sys.stdout.isatty()

    options = DriverOptions(
        follow_redirects=not no_follow_redirects,
        max_redirects=max_redirects,
        timeout=Timeout() if timeout is None else Timeout(timeout),
    )
    header_items: list[tuple[str, str]] = [parse_header(h) for h in headers]
    attachments: list[FileAttachment] = [parse_form_field(f) for f in form]

    try:
        client = Nekocurl(
            url,
            driver=driver,
            driver_options=options,
            method=method,
            headers=dict(header_items),
            data=data,
            files=attachments,
        )
        if verbose:
            request = client.to_descriptor()
            logger.debug("Using the %r driver with %r", client.driver, options)
            click.echo(format_request_plain(request))
        response = typing.cast(Response, asyncio.run(client.send(full_response=True)))
    except HTTPStatusError as exc:
        _echo_response(exc.response, use_rich)
        sys.exit(1)
    except (HTTPError, InvalidDescriptor, ValueError) as exc:
        _echo_error(exc, use_rich)
        sys.exit(1)

    _echo_response(response, use_rich)
