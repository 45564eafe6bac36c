"""Media-type helpers shared by the ingestion pipeline and the file endpoint."""
from __future__ import annotations

import io
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

from PIL import Image, UnidentifiedImageError

GENERIC_MEDIA_TYPE = "application/octet-stream"
GENERIC_EXTENSION = ".bin"

_EXT_BY_TYPE = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
_TYPE_BY_EXT = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}
_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def normalize_media_type(value: str | None) -> str:
    """``"Image/JPG; q=1"`` -> ``"image/jpeg"``; empty input stays empty."""
    if not value:
        return ""
    base = value.split(";", 1)[0].strip().lower()
    return _ALIASES.get(base, base)


def is_image_type(media_type: str) -> bool:
    return normalize_media_type(media_type).startswith("image/")


def hint_extension(name_hint: str) -> str:
    """Known image extension of a filename or URL path, else ``""``."""
    if not name_hint:
        return ""
    path = urlsplit(name_hint).path
    suffix = PurePosixPath(unquote(path).replace("\\", "/")).suffix.lower()
    if suffix not in _TYPE_BY_EXT:
        return ""
    return _EXT_BY_TYPE[_TYPE_BY_EXT[suffix]]


def extension_for(media_type: str, name_hint: str = "") -> str:
    return (
        hint_extension(name_hint)
        or _EXT_BY_TYPE.get(normalize_media_type(media_type))
        or GENERIC_EXTENSION
    )


def media_type_for_extension(extension: str) -> str:
    return _TYPE_BY_EXT.get(extension.lower(), GENERIC_MEDIA_TYPE)


def media_type_for_name(name: str) -> str:
    return media_type_for_extension(PurePosixPath(name).suffix)


def sniff_media_type(data: bytes) -> str | None:
    """Identify image bytes with Pillow; ``None`` when Pillow cannot read them.

    Only the header is parsed, the pixel data is not decoded.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None
    if not fmt:
        return None
    return normalize_media_type(Image.MIME.get(fmt, f"image/{fmt.lower()}"))
