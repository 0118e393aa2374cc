"""
File Upload
===========

Demonstrates multipart/form-data uploads with ``attach_file`` and
``attach_files``. Attachments with a filename are sent as files, the rest as
plain form fields.
"""

import asyncio

import nekocurl


async def main() -> None:
    response = await (
        nekocurl.Nekocurl("https://httpbin.org/post", method="POST")
        .attach_file("avatar", b"\x89PNG\r\n\x1a\n", "avatar.png")
        .attach_file("username", "neko")
        .attach_files(
            [
                {"name": "notes", "data": "line one\nline two", "filename": "notes.txt"},
                nekocurl.FileAttachment("tag", "cats"),
            ]
        )
        .send(full_response=True)
    )

    print(f"Status: {response.status_code}")
    print(f"  files: {sorted(response.body['files'])}")
    print(f"  form:  {response.body['form']}")


if __name__ == "__main__":
    asyncio.run(main())
