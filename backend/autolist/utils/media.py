"""Media path helpers.

The server returns media as absolute URLs (``https://cdn.../images/cars/1.jpg``)
but the delete endpoints expect the stored path (``/images/cars/1.jpg``).
"""

from __future__ import annotations

from urllib.parse import urlsplit

IMAGES_SEGMENT = "/images/"


def normalize_media_path(url: str) -> str:
    """Convert an absolute media URL to the path form the delete endpoints accept.

    Relative paths are returned unchanged. For absolute URLs the path is
    sliced from ``/images/`` when present, otherwise the URL path is used.
    """
    url = url.strip()
    if not url.startswith(("http://", "https://", "//")):
        return url
    path = urlsplit(url).path or "/"
    index = path.find(IMAGES_SEGMENT)
    return path[index:] if index >= 0 else path


def file_extension(filename: str) -> str:
    """Lowercase extension without the dot ("" when there is none)."""
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot and ext else ""
