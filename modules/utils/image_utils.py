"""Helpers for displayable image references and uploaded files."""

from __future__ import annotations

import base64
import binascii
import mimetypes
import re
from pathlib import Path
from typing import Tuple

from modules.errors import FormatError, ValidationError
from modules.pipelines.request_builder import SourceImage

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def build_image_reference(media_type: str, encoded_bytes: str) -> str:
    """Return a ``data:`` URL for base64 image data."""
    return f"data:{media_type};base64,{encoded_bytes}"


def parse_image_reference(reference: str) -> Tuple[str, str]:
    """Split a ``data:`` URL into ``(media_type, encoded_bytes)``.

    The header ends at the first comma; the media type is the text between
    ``:`` and the first ``;`` of the header.
    """
    if not reference:
        raise FormatError("There is no generated image to use.")

    header, sep, payload = reference.partition(",")
    if not sep:
        raise FormatError("Invalid image data: missing payload delimiter.")
    if not header.startswith("data:") or ";" not in header:
        raise FormatError("Invalid image data: unrecognized header.")

    media_type, _, encoding = header[len("data:"):].partition(";")
    if not media_type.startswith("image/") or encoding != "base64":
        raise FormatError(f"Invalid image data: unsupported media type '{media_type}'.")
    if not payload:
        raise FormatError("Invalid image data: empty payload.")
    return media_type, payload


def decode_image_reference(reference: str) -> Tuple[str, bytes]:
    """Return the media type and raw bytes behind a ``data:`` URL."""
    media_type, payload = parse_image_reference(reference)
    try:
        return media_type, base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise FormatError("Invalid image data: payload is not valid base64.") from exc


def guess_extension(media_type: str) -> str:
    """Return a file extension (with dot) for an image media type."""
    if media_type == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(media_type) or ".png"


def load_source_image(path: Path | str) -> SourceImage:
    """Read an uploaded file into a SourceImage."""
    file_path = Path(path)
    media_type, _ = mimetypes.guess_type(file_path.name)
    if not media_type or not media_type.startswith("image/"):
        raise ValidationError("Please select an image file.")
    try:
        data = file_path.read_bytes()
    except OSError as exc:
        raise ValidationError("Failed to process image file.") from exc

    encoded = base64.b64encode(data).decode("ascii")
    return SourceImage(
        encoded_bytes=encoded,
        media_type=media_type,
        display_name=file_path.name,
        preview_reference=build_image_reference(media_type, encoded),
    )


def slugify(text: str, max_length: int = 40) -> str:
    """Lowercase, dash-separated slug suitable for file names."""
    slug = _SLUG_PATTERN.sub("-", text.lower()).strip("-")
    slug = slug[:max_length].rstrip("-")
    return slug or "image"
