# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""File helpers for endpoints: CSV downloads and bounded uploads."""

from fastapi import Response, UploadFile

from src.core.errors import ValidationError

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


class UploadTooLargeError(ValidationError):
    """Raised when an upload exceeds the size limit."""

    pass


def csv_response(content: str, filename: str) -> Response:
    """Return CSV content as a file download.

    Args:
        content: CSV text, usually starting with a UTF-8 BOM for Excel.
        filename: Name suggested to the browser.
    """
    return Response(
        content=content.encode("utf-8"),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload, buffering at most one byte past the limit.

    Raises:
        UploadTooLargeError: If the file is larger than max_bytes.
    """
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise UploadTooLargeError("File is too large", details={"max_bytes": max_bytes})
    return content
