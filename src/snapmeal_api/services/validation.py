"""
Upload validation and content hashing.

Every ingestion path (multipart upload or base64 data URI) converges on a
raw byte buffer that is validated here before anything is stored or sent to
an inference backend.
"""

import base64
import binascii
import hashlib
import io
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from snapmeal_api.core.exceptions import ValidationError

# Magic-number signatures by mime type
JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
WEBP_RIFF = b"RIFF"
WEBP_TAG = b"WEBP"

MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

DATA_URI_PATTERN = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(;[^,]*)?,(.*)$", re.DOTALL)


@dataclass(frozen=True)
class ValidatedImage:
    """An upload that passed size, type and signature checks."""

    data: bytes
    content_hash: str
    mime_type: str
    size_bytes: int


def compute_content_hash(data: bytes) -> str:
    """SHA-256 hex digest of the exact bytes; the deduplication key."""
    return hashlib.sha256(data).hexdigest()


def normalize_mime_type(mime_type: str | None) -> str:
    if not mime_type:
        return ""
    value = mime_type.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(value, value)


def extension_for(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(normalize_mime_type(mime_type), "bin")


def sniff_mime_type(data: bytes) -> str | None:
    """Detect the image type from its signature bytes."""
    if data.startswith(JPEG_SIGNATURE):
        return "image/jpeg"
    if data.startswith(PNG_SIGNATURE):
        return "image/png"
    if len(data) >= 12 and data[:4] == WEBP_RIFF and data[8:12] == WEBP_TAG:
        return "image/webp"
    return None


def validate_image(
    data: bytes,
    claimed_mime: str | None,
    *,
    max_bytes: int,
    allowed_mime_types: list[str] | tuple[str, ...],
    max_pixels: int | None = None,
) -> ValidatedImage:
    """
    Check an upload and compute its content hash.

    Args:
        data: Raw image bytes
        claimed_mime: Mime type declared by the client
        max_bytes: Maximum accepted payload size
        allowed_mime_types: Accepted mime types
        max_pixels: Largest accepted width x height, unchecked when None

    Returns:
        ValidatedImage with the normalized mime type and SHA-256 hash

    Raises:
        ValidationError: Empty or oversized payload, disallowed type, bytes
            that do not carry the claimed type's signature, or too many pixels
    """
    size = len(data)
    if size == 0:
        raise ValidationError("Image payload is empty")
    if size > max_bytes:
        raise ValidationError(
            f"Image exceeds maximum size of {max_bytes // (1024 * 1024)}MB",
            details={"size_bytes": size, "max_bytes": max_bytes},
        )

    mime_type = normalize_mime_type(claimed_mime)
    allowed = {normalize_mime_type(m) for m in allowed_mime_types}
    if mime_type not in allowed:
        raise ValidationError(
            f"Unsupported image type: {claimed_mime or 'unknown'}",
            details={"allowed": sorted(allowed)},
        )

    detected = sniff_mime_type(data)
    if detected != mime_type:
        raise ValidationError(
            "Image content does not match its declared type",
            details={"claimed": mime_type, "detected": detected},
        )

    if max_pixels is not None:
        _check_pixel_count(data, max_pixels)

    return ValidatedImage(
        data=data,
        content_hash=compute_content_hash(data),
        mime_type=mime_type,
        size_bytes=size,
    )


def _check_pixel_count(data: bytes, max_pixels: int) -> None:
    """Reject images whose header declares more pixels than allowed."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except Image.DecompressionBombError as e:
        raise ValidationError(
            "Image dimensions are too large", details={"max_pixels": max_pixels}
        ) from e
    except (UnidentifiedImageError, OSError):
        # Undecodable headers are left to derivative generation
        return

    if width * height > max_pixels:
        raise ValidationError(
            f"Image dimensions {width}x{height} are too large",
            details={"width": width, "height": height, "max_pixels": max_pixels},
        )


def _repair_base64(payload: str) -> str:
    # Form encoding turns '+' into spaces and clients wrap long lines
    cleaned = payload.strip().replace(" ", "+")
    cleaned = re.sub(r"[\r\n\t]", "", cleaned)
    missing = -len(cleaned) % 4
    return cleaned + "=" * missing


def decode_data_uri(value: str) -> tuple[bytes, str | None]:
    """
    Decode a ``data:<mime>;base64,<payload>`` string to bytes.

    A bare base64 string is accepted too; its mime type is sniffed from the
    decoded bytes (None if unrecognized, which validation then rejects).

    Raises:
        ValidationError: Not base64, or a data URI that is not base64 encoded
    """
    value = value.strip()
    mime_type: str | None = None
    payload = value

    if value.startswith("data:"):
        match = DATA_URI_PATTERN.match(value)
        if match is None:
            raise ValidationError("Malformed data URI")
        mime_type, params, payload = match.groups()
        if not params or "base64" not in params.lower():
            raise ValidationError("Data URI must be base64 encoded")

    try:
        data = base64.b64decode(_repair_base64(payload), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image data is not valid base64") from e

    if not data:
        raise ValidationError("Image payload is empty")

    return data, mime_type or sniff_mime_type(data)
