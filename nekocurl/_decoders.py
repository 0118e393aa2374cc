"""
Handlers for Content-Encoding and Content-Type of response bodies.

Content decoders are incremental: `decode()` is fed raw chunks as they arrive
from the transport and `flush()` is called once the body has ended.
"""

from __future__ import annotations

import json
import typing
import zlib
from urllib.parse import parse_qsl

from ._exceptions import DecompressionError

NO_BODY_STATUS_CODES = frozenset({204, 304})

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class ContentDecoder:
    def decode(self, data: bytes) -> bytes:
        raise NotImplementedError()  # pragma: no cover

    def flush(self) -> bytes:
        raise NotImplementedError()  # pragma: no cover


class IdentityDecoder(ContentDecoder):
    """
    Handle unencoded data.
    """

    def decode(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


class DeflateDecoder(ContentDecoder):
    """
    Handle 'deflate' decoding.

    Servers disagree on whether 'deflate' means a zlib stream or a raw deflate
    stream, so the zlib header is tried first and raw deflate on failure.
    """

    def __init__(self) -> None:
        self.first_attempt = True
        self.seen_data = False
        self.decompressor = zlib.decompressobj()

    def decode(self, data: bytes) -> bytes:
        if not data:
            return b""
        self.seen_data = True
        was_first_attempt = self.first_attempt
        self.first_attempt = False
        try:
            return self.decompressor.decompress(data)
        except zlib.error as exc:
            if was_first_attempt:
                self.decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
                return self.decode(data)
            raise DecompressionError(str(exc)) from exc

    def flush(self) -> bytes:
        try:
            tail = self.decompressor.flush()
        except zlib.error as exc:  # pragma: no cover
            raise DecompressionError(str(exc)) from exc
        if self.seen_data and not self.decompressor.eof:
            raise DecompressionError("Compressed body ended before the end of its stream.")
        return tail


class GZipDecoder(ContentDecoder):
    """
    Handle 'gzip' decoding.
    """

    def __init__(self) -> None:
        self.seen_data = False
        self.decompressor = zlib.decompressobj(zlib.MAX_WBITS | 16)

    def decode(self, data: bytes) -> bytes:
        if not data:
            return b""
        self.seen_data = True
        try:
            return self.decompressor.decompress(data)
        except zlib.error as exc:
            raise DecompressionError(str(exc)) from exc

    def flush(self) -> bytes:
        try:
            tail = self.decompressor.flush()
        except zlib.error as exc:  # pragma: no cover
            raise DecompressionError(str(exc)) from exc
        if self.seen_data and not self.decompressor.eof:
            raise DecompressionError("Compressed body ended before the end of its stream.")
        return tail


SUPPORTED_DECODERS: dict[str, type[ContentDecoder]] = {
    "identity": IdentityDecoder,
    "gzip": GZipDecoder,
    "deflate": DeflateDecoder,
}


def has_empty_body(status_code: int, headers: typing.Mapping[str, str]) -> bool:
    return status_code in NO_BODY_STATUS_CODES or headers.get("content-length") == "0"


def should_decompress(status_code: int, headers: typing.Mapping[str, str]) -> bool:
    if has_empty_body(status_code, headers):
        return False
    encoding = headers.get("content-encoding", "").strip().lower()
    return encoding in ("gzip", "deflate")


def get_content_decoder(status_code: int, headers: typing.Mapping[str, str]) -> ContentDecoder:
    if not should_decompress(status_code, headers):
        return IdentityDecoder()
    encoding = headers["content-encoding"].strip().lower()
    return SUPPORTED_DECODERS[encoding]()


def media_type(headers: typing.Mapping[str, str]) -> str:
    return headers.get("content-type", "").partition(";")[0].strip().lower()


def parse_form(text: str) -> dict[str, typing.Any]:
    """Parse a urlencoded form into a flat map; repeated keys collect into a list."""
    form: dict[str, typing.Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        if key not in form:
            form[key] = value
        elif isinstance(form[key], list):
            form[key].append(value)
        else:
            form[key] = [form[key], value]
    return form


def parse_body(
    headers: typing.Mapping[str, str], raw_body: bytes, *, auto_string: bool = False
) -> typing.Any:
    """Turn an already decompressed body into its most useful Python form.

    JSON bodies are parsed, falling back to the text when they do not parse.
    Urlencoded bodies become a dict. Everything else stays bytes, or text with
    `auto_string`.
    """
    kind = media_type(headers)
    if kind == JSON_CONTENT_TYPE:
        text = raw_body.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except ValueError:
            return text
    if kind == FORM_CONTENT_TYPE:
        return parse_form(raw_body.decode("utf-8", errors="replace"))
    if auto_string:
        return raw_body.decode("utf-8", errors="replace")
    return raw_body

