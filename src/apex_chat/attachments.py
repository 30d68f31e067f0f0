"""Load local image files as message attachments."""

from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path

from .exceptions import AttachmentError
from .models import Attachment

LOGGER = logging.getLogger(__name__)

# Image file extensions accepted as prompt attachments
IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".heic", ".heif"}
)

MAX_IMAGE_BYTES = 10 * 1024 * 1024


def _is_regular_file(path: Path) -> bool:
    try:
        return path.is_file() and not path.is_symlink()
    except OSError:
        return False


def validate_image_path(raw_path: str, *, max_bytes: int = MAX_IMAGE_BYTES) -> Path:
    """Return the expanded path of a usable image or raise ``AttachmentError``."""
    expanded = Path(os.path.expanduser(raw_path.strip()))
    if not _is_regular_file(expanded):
        raise AttachmentError(f"Image not found: {expanded}")
    ext = expanded.suffix.lower()
    if ext not in IMAGE_EXTENSIONS:
        raise AttachmentError(f"Unsupported image type: {ext or '(none)'}")
    try:
        size = expanded.stat().st_size
    except OSError as exc:
        raise AttachmentError("Unable to read image size.") from exc
    if size > max_bytes:
        raise AttachmentError(f"Image too large ({size} bytes). Max is {max_bytes} bytes.")
    return expanded


def load_image_attachment(raw_path: str, *, max_bytes: int = MAX_IMAGE_BYTES) -> Attachment:
    """Read an image file into an inline attachment."""
    path = validate_image_path(raw_path, max_bytes=max_bytes)
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = f"image/{path.suffix.lower().lstrip('.')}"
    try:
        payload = path.read_bytes()
    except OSError as exc:
        raise AttachmentError(f"Unable to read image: {exc}") from exc
    LOGGER.info(
        "attachment.loaded",
        extra={"event": "attachment.loaded", "mime_type": mime_type, "size": len(payload)},
    )
    return Attachment.from_bytes(payload, mime_type, path.name)
