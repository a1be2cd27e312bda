"""Local image storage for uploads and generated previews.

Images live in a single flat directory and are referenced from style records
by a relative ``images/<filename>`` path, which is also the URL they are
served under.
"""

from __future__ import annotations

import io
import logging
import re
import time
from pathlib import Path, PurePosixPath

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_URL_PREFIX = "images/"

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")

# Pillow format name -> (extension, MIME type)
_FORMATS = {
    "PNG": (".png", "image/png"),
    "JPEG": (".jpg", "image/jpeg"),
    "GIF": (".gif", "image/gif"),
    "WEBP": (".webp", "image/webp"),
    "BMP": (".bmp", "image/bmp"),
}


class InvalidImageError(ValueError):
    """Raised when uploaded bytes are not a supported image."""


def sanitize_filename(original: str, now: float | None = None, default_ext: str = ".jpg") -> str:
    """Make a client-supplied filename safe to store.

    Whitespace runs become ``-``, anything outside ``[A-Za-z0-9._-]`` is
    dropped and the result is lower-cased.  When nothing survives, a
    timestamped ``image-<ms><ext>`` name is used instead.
    """
    name = PurePosixPath((original or "").replace("\\", "/")).name
    cleaned = _UNSAFE.sub("", _WHITESPACE.sub("-", name)).lower()
    stem = cleaned.rsplit(".", 1)[0] if "." in cleaned else cleaned
    if stem.strip(".-_"):
        return cleaned

    suffix = PurePosixPath(name).suffix.lower() or default_ext
    if _UNSAFE.search(suffix):
        suffix = default_ext
    millis = int((now if now is not None else time.time()) * 1000)
    return f"image-{millis}{suffix}"


def inspect_image(data: bytes) -> tuple[str, str]:
    """Verify that *data* is an image Pillow can read.

    Returns:
        ``(extension, mime_type)`` of the detected format.

    Raises:
        InvalidImageError: If the bytes are empty, corrupt or of an
            unsupported format.
    """
    if not data:
        raise InvalidImageError("Empty file")
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidImageError(f"Not a readable image: {exc}") from exc

    if fmt not in _FORMATS:
        raise InvalidImageError(f"Unsupported image format: {fmt}")
    return _FORMATS[fmt]


def store_image(images_dir: Path, filename: str, data: bytes) -> dict:
    """Write *data* to ``images_dir/filename``.

    Returns:
        ``{"url": "images/<filename>", "filename": <filename>}``.
    """
    images_dir.mkdir(parents=True, exist_ok=True)
    (images_dir / filename).write_bytes(data)
    logger.info("Stored image %s (%.1f KB)", filename, len(data) / 1024)
    return {"url": f"{IMAGE_URL_PREFIX}{filename}", "filename": filename}


def resolve_local_image(images_dir: Path, image_path: str) -> Path:
    """Map an ``images/...`` reference to a file inside *images_dir*.

    Raises:
        FileNotFoundError: If the reference is not a local image path, escapes
            *images_dir*, or points at a missing file.
    """
    if not image_path or not image_path.startswith(IMAGE_URL_PREFIX):
        raise FileNotFoundError(f"Not a local image path: {image_path!r}")

    root = images_dir.resolve()
    candidate = (root / image_path[len(IMAGE_URL_PREFIX):]).resolve()
    if root not in candidate.parents or not candidate.is_file():
        raise FileNotFoundError(f"Image not found: {image_path}")
    return candidate


def remove_local_image(images_dir: Path, image_path: str) -> bool:
    """Delete a style's local image.  Remote URLs are left alone.

    Returns:
        Whether a file was removed.
    """
    try:
        path = resolve_local_image(images_dir, image_path)
    except FileNotFoundError:
        return False
    path.unlink()
    logger.info("Removed image %s", image_path)
    return True
