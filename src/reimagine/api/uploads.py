"""Upload encoding for the Reimagine API.

Uploaded images are not written anywhere: each file is checked with Pillow
and returned as a ``data:`` URL, which the client then sends back inside a
generation request.  The hosted model accepts data URLs directly, so no
object storage is involved.

Limits (from :class:`~reimagine.core.config.ReimagineConfig`):

- at most ``max_upload_files`` files per request
- at most ``max_upload_bytes`` bytes per file
- every file must decode as an image
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from reimagine.core.errors import ValidationError

logger = logging.getLogger(__name__)


def _format_size(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):g} MB"


def to_data_url(data: bytes, mime_type: str) -> str:
    """Embed *data* in a base64 ``data:`` URL."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def sniff_image(data: bytes) -> tuple[str, tuple[int, int]]:
    """Return the MIME type and size of an encoded image.

    Pillow refuses images above its decompression-bomb pixel limit
    (``Image.MAX_IMAGE_PIXELS`` x 2) before decoding any pixel data.

    Raises:
        ValueError: If Pillow cannot identify the bytes as an image or the
            declared dimensions exceed the pixel limit.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
            size = image.size
            image.verify()
    except Image.DecompressionBombError as e:
        raise ValueError("Image dimensions too large") from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError("Not a valid image") from e
    mime_type = Image.MIME.get(fmt or "", "")
    if not mime_type:
        raise ValueError(f"Unsupported image format: {fmt}")
    return mime_type, size


async def encode_uploads(
    files: list[UploadFile] | None,
    *,
    max_files: int,
    max_bytes: int,
) -> list[str]:
    """Validate uploaded files and convert them to data URLs.

    Args:
        files: Files received in the ``images`` multipart field.
        max_files: Maximum number of files accepted.
        max_bytes: Maximum size of a single file.

    Returns:
        One data URL per file, in upload order.

    Raises:
        ValidationError: If no files were sent, too many were sent, or any
            file is oversized or not an image.  All offending files are
            reported together.
    """
    if not files:
        raise ValidationError([{"field": "images", "message": "No files uploaded"}])
    if len(files) > max_files:
        raise ValidationError(
            [{"field": "images", "message": f"At most {max_files} files can be uploaded at once"}]
        )

    urls: list[str] = []
    errors: list[dict[str, str]] = []

    for index, upload in enumerate(files):
        field = f"images.{index}"
        data = await upload.read(max_bytes + 1)
        if len(data) > max_bytes:
            errors.append({"field": field, "message": f"File exceeds the {_format_size(max_bytes)} limit"})
            continue
        try:
            mime_type, size = await asyncio.to_thread(sniff_image, data)
        except ValueError as e:
            errors.append({"field": field, "message": str(e)})
            continue

        logger.debug("Encoded %s (%s, %dx%d)", upload.filename, mime_type, *size)
        urls.append(to_data_url(data, mime_type))

    if errors:
        raise ValidationError(errors)

    logger.info("Encoded %d uploaded image(s)", len(urls))
    return urls
