"""Image preparation before visual extraction.

Receipt photos from phones are often several megapixels; the extraction
service reads them just as well at a bounded size. Oversized images are
auto-oriented, downscaled to fit ``max_dimension`` and re-encoded as JPEG.
Anything Pillow cannot decode passes through unchanged.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DEFAULT_MAX_DIMENSION = 2000
JPEG_QUALITY = 85

# Formats every vision endpoint accepts without conversion.
PASSTHROUGH_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


@dataclass
class PreparedImage:
    """Image bytes ready for the extraction service."""

    content: bytes
    mime_type: str
    width: int = 0
    height: int = 0
    resized: bool = False


def _base_mime(mime_type: str | None) -> str:
    return (mime_type or "").split(";", 1)[0].strip().lower()


def prepare_image_for_vision(
    content: bytes,
    mime_type: str | None = None,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
) -> PreparedImage:
    """Return *content* bounded to *max_dimension* on its longest side.

    Small images in a format vision endpoints accept are returned as-is.
    Larger images, and formats such as TIFF or BMP, are re-encoded as JPEG.
    """
    declared = _base_mime(mime_type) or "image/jpeg"

    try:
        img = Image.open(io.BytesIO(content))
        img = ImageOps.exif_transpose(img)  # auto-orient
    except (UnidentifiedImageError, OSError, ValueError):
        logger.warning("Could not decode image (%s, %d bytes), sending original", declared, len(content))
        return PreparedImage(content=content, mime_type=declared)

    width, height = img.size
    needs_resize = max(width, height) > max_dimension > 0
    if not needs_resize and declared in PASSTHROUGH_TYPES:
        return PreparedImage(content=content, mime_type=declared, width=width, height=height)

    if needs_resize:
        img = img.copy()
        img.thumbnail((max_dimension, max_dimension), Image.LANCZOS)

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    encoded = buf.getvalue()

    logger.info(
        "Prepared image for vision: %dx%d -> %dx%d, %d -> %d bytes",
        width,
        height,
        img.width,
        img.height,
        len(content),
        len(encoded),
    )
    return PreparedImage(
        content=encoded,
        mime_type="image/jpeg",
        width=img.width,
        height=img.height,
        resized=needs_resize,
    )
