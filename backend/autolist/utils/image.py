"""Image compression before upload.

Photos are downscaled to ``settings.image_max_width`` and re-encoded as JPEG
at ``settings.image_quality``. Pillow work runs in a thread so the event
loop keeps serving other editor loads during a submit.
"""

from __future__ import annotations

import asyncio
import io

import structlog
from PIL import Image, UnidentifiedImageError

from autolist.config import settings
from autolist.errors import MediaProcessingError
from autolist.models.contracts import MediaFile
from autolist.utils.media import file_extension

logger = structlog.get_logger()

JPEG_CONTENT_TYPE = "image/jpeg"


def compress_image_bytes(
    data: bytes,
    max_width: int | None = None,
    quality: int | None = None,
) -> bytes:
    """Downscale (never upscale) and re-encode as JPEG.

    Raises:
        MediaProcessingError: the bytes are not a decodable image, or decode
            past Pillow's pixel limit.
    """
    max_width = max_width or settings.image_max_width
    quality = quality or settings.image_quality

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            image = img.convert("RGB")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as exc:
        raise MediaProcessingError(f"Cannot decode image: {exc}") from exc

    w, h = image.size
    if w > max_width:
        new_h = max(1, round(h * max_width / w))
        image = image.resize((max_width, new_h), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def normalize_upload_filename(filename: str, fallback_ext: str = "jpg") -> str:
    """Lowercase the extension; the upload endpoint rejects ``.JPG``."""
    stem, dot, _ = filename.rpartition(".")
    ext = file_extension(filename)
    if not dot or not stem:
        return f"{filename or 'image'}.{fallback_ext}"
    return f"{stem}.{ext or fallback_ext}"


async def compress_image(file: MediaFile) -> MediaFile:
    """Compress an image file; videos and other files pass through untouched."""
    if file.kind != "image":
        return file

    compressed = await asyncio.to_thread(compress_image_bytes, file.content)
    stem = file.filename.rpartition(".")[0] or file.filename
    logger.info(
        "image_compressed",
        filename=file.filename,
        original_bytes=file.size,
        compressed_bytes=len(compressed),
    )
    return MediaFile(
        filename=normalize_upload_filename(f"{stem}.jpg"),
        content=compressed,
        content_type=JPEG_CONTENT_TYPE,
    )
