"""Image payload verification by signature (magic number) inspection.

Both transports that can deliver an image, a raw uploaded file and a Base64
data URI embedded in backup JSON, are reduced to a short byte prefix and
checked by the same ``classify`` routine. Declared content types and file
extensions are never trusted.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional, Union

from config.settings import ENCODED_HEADER_CHARS, IMAGE_HEADER_BYTES, MAX_IMAGE_BYTES

from .errors import ValidationRejected

__all__ = [
    "ImageFormat",
    "classify",
    "detect_image_format",
    "validate_file",
    "validate_encoded_image",
    "ensure_valid_image",
    "sanitize_image",
]

log = logging.getLogger(__name__)

FileInput = Union[str, os.PathLike, BinaryIO]


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    WEBP = "webp"


_PNG = b"\x89PNG\r\n\x1a\n"
_JPEG = b"\xff\xd8\xff"
_GIF = b"GIF8"
_RIFF = b"RIFF"
_WEBP = b"WEBP"


def detect_image_format(data: bytes) -> Optional[ImageFormat]:
    """Return the format whose signature prefixes ``data`` (None if none do)."""
    if data.startswith(_PNG):
        return ImageFormat.PNG
    if data.startswith(_JPEG):
        return ImageFormat.JPEG
    if data.startswith(_GIF):
        return ImageFormat.GIF
    # RIFF container: bytes 4-7 are the chunk size, 8-11 the form type
    if len(data) >= 12 and data[:4] == _RIFF and data[8:12] == _WEBP:
        return ImageFormat.WEBP
    return None


def classify(data: bytes) -> bool:
    return detect_image_format(bytes(data)) is not None


def _read_header(file: FileInput) -> tuple[int, bytes]:
    if isinstance(file, (str, os.PathLike)):
        path = Path(file)
        size = path.stat().st_size
        if size > MAX_IMAGE_BYTES:
            return size, b""
        with path.open("rb") as fh:
            return size, fh.read(IMAGE_HEADER_BYTES)
    pos = file.tell()
    try:
        size = file.seek(0, os.SEEK_END)
        if size > MAX_IMAGE_BYTES:
            return size, b""
        file.seek(0)
        return size, file.read(IMAGE_HEADER_BYTES)
    finally:
        file.seek(pos)


def validate_file(file: FileInput) -> bool:
    """Validate an uploaded image file.

    Files larger than ``MAX_IMAGE_BYTES`` are rejected without reading their
    content; otherwise only the first 16 bytes are read.
    """
    size, header = _read_header(file)
    if size > MAX_IMAGE_BYTES:
        log.info("image rejected: %d bytes exceeds limit of %d", size, MAX_IMAGE_BYTES)
        return False
    return classify(header)


def _decode_prefix(chunk: str) -> bytes:
    chunk = "".join(chunk.split())
    if len(chunk) % 4 == 1:
        raise binascii.Error("truncated base64 quantum")
    chunk += "=" * (-len(chunk) % 4)
    return base64.b64decode(chunk, validate=True)


def validate_encoded_image(text: str) -> bool:
    """Validate a Base64 image string (optionally a ``data:`` URI).

    An empty string means "no image" and is valid. Decode failures are logged
    and treated as invalid.
    """
    if not isinstance(text, str):
        return False
    if text.strip() == "":
        return True
    parts = text.split(",", 1)
    content = parts[1] if len(parts) > 1 else parts[0]
    try:
        header = _decode_prefix(content[:ENCODED_HEADER_CHARS])
    except (binascii.Error, ValueError) as e:
        log.warning("image payload could not be decoded: %s", e)
        return False
    return classify(header)


def ensure_valid_image(text: str) -> str:
    """Return ``text`` unchanged if it is a valid image payload, else raise."""
    if not validate_encoded_image(text):
        raise ValidationRejected("menu image does not match a supported image signature")
    return text


def sanitize_image(text: str | None) -> str:
    """Coerce an untrusted image payload to ``""`` when it fails validation.

    Blank payloads also become ``""`` so a stored image is either empty or validated.
    """
    if not text or (isinstance(text, str) and text.strip() == ""):
        return ""
    try:
        return ensure_valid_image(text or "")
    except ValidationRejected:
        log.warning("menu image rejected by signature check; stored as empty")
        return ""
