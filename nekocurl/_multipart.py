from __future__ import annotations

import binascii
import mimetypes
import os
import typing

from ._models import FileAttachment

_HTML5_FORM_ENCODING_REPLACEMENTS = {'"': "%22", "\\": "\\\\"}
_HTML5_FORM_ENCODING_REPLACEMENTS.update(
    {chr(c): "%{:02X}".format(c) for c in range(0x1F + 1) if c != 0x1B}
)


def _format_form_param(name: str, value: str) -> bytes:
    """
    Encode a name/value pair within a multipart form.
    """
    escaped = "".join(_HTML5_FORM_ENCODING_REPLACEMENTS.get(char, char) for char in value)
    return f'{name}="{escaped}"'.encode()


def _guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class MultipartPart:
    """
    One part of a multipart body. Attachments with a filename become file
    parts with a guessed `Content-Type`; the others become plain fields.
    """

    def __init__(self, attachment: FileAttachment) -> None:
        self.name = attachment.field_name
        self.filename = attachment.filename
        self.content = attachment.content
        self.content_type = (
            _guess_content_type(attachment.filename) if attachment.is_file else None
        )

    def render_headers(self) -> bytes:
        parts = [b"Content-Disposition: form-data; ", _format_form_param("name", self.name)]
        if self.filename is not None:
            parts.extend([b"; ", _format_form_param("filename", self.filename)])
        if self.content_type is not None:
            parts.extend([b"\r\nContent-Type: ", self.content_type.encode()])
        parts.append(b"\r\n\r\n")
        return b"".join(parts)

    def render(self) -> typing.Iterator[bytes]:
        yield self.render_headers()
        yield self.content

    def get_length(self) -> int:
        return len(self.render_headers()) + len(self.content)


class MultipartEncoder:
    """
    Serialize attachments into a multipart/form-data body, in input order.
    """

    def __init__(
        self,
        files: typing.Iterable[FileAttachment],
        boundary: bytes | None = None,
    ) -> None:
        if boundary is None:
            boundary = binascii.hexlify(os.urandom(16))
        self.boundary = boundary
        self.parts = [MultipartPart(attachment) for attachment in files]

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary.decode('ascii')}"

    def iter_chunks(self) -> typing.Iterator[bytes]:
        for part in self.parts:
            yield b"--%s\r\n" % self.boundary
            yield from part.render()
            yield b"\r\n"
        yield b"--%s--\r\n" % self.boundary

    def get_content_length(self) -> int:
        boundary_length = len(self.boundary)
        length = 0
        for part in self.parts:
            length += 2 + boundary_length + 2  # b"--{boundary}\r\n"
            length += part.get_length()
            length += 2  # b"\r\n"
        length += 2 + boundary_length + 4  # b"--{boundary}--\r\n"
        return length

    def get_headers(self) -> dict[str, str]:
        return {
            "content-length": str(self.get_content_length()),
            "content-type": self.content_type,
        }

    def encode(self) -> bytes:
        return b"".join(self.iter_chunks())
