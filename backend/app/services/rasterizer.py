"""First-page rasterization of scanned PDFs with pdf2image (poppler)."""

from __future__ import annotations

import asyncio
import io
import logging
import shutil

from pdf2image import convert_from_bytes
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFPopplerTimeoutError,
    PDFSyntaxError,
)

from app.core.errors import RasterizationFailed

logger = logging.getLogger(__name__)

PDFTOPPM_BINARY = "pdftoppm"
DEFAULT_DPI = 200


def pdftoppm_available() -> bool:
    return shutil.which(PDFTOPPM_BINARY) is not None


def _render_first_page(content: bytes, dpi: int, timeout_seconds: float) -> bytes:
    try:
        pages = convert_from_bytes(
            content,
            dpi=dpi,
            first_page=1,
            last_page=1,
            fmt="png",
            single_file=True,
            timeout=timeout_seconds,
        )
    except PDFInfoNotInstalledError as exc:
        raise RasterizationFailed("poppler is not installed") from exc
    except PDFPopplerTimeoutError as exc:
        raise RasterizationFailed(f"Rasterization timed out after {timeout_seconds}s") from exc
    except (PDFPageCountError, PDFSyntaxError) as exc:
        raise RasterizationFailed(f"Unreadable PDF: {exc}") from exc

    if not pages:
        raise RasterizationFailed("Rasterization produced no pages")

    buf = io.BytesIO()
    pages[0].save(buf, format="PNG")
    return buf.getvalue()


async def rasterize_first_page(
    content: bytes,
    *,
    dpi: int = DEFAULT_DPI,
    timeout_seconds: float = 60.0,
) -> bytes:
    """Render page 1 of the PDF in *content* to PNG bytes.

    Raises ``RasterizationFailed`` when poppler is missing, the document
    cannot be read, rendering times out, or nothing is produced.
    """
    if not content:
        raise RasterizationFailed("Empty document")

    image = await asyncio.to_thread(_render_first_page, content, dpi, timeout_seconds)
    logger.info("Rasterized page 1 at %d dpi (%d bytes)", dpi, len(image))
    return image
