"""Extraction fallback chain: attachment -> bytes -> text or image -> record.

Per MIME family:

- ``image/*``: straight to visual extraction.
- ``application/pdf``: try the native text layer first. More than
  ``pdf_digital_min_chars`` non-whitespace characters means a digital PDF
  (text extraction on a bounded prefix, ``raw_text`` restored to the full
  text). Otherwise the PDF is treated as scanned: page 1 is rasterized and
  read visually; a rasterization failure yields an empty record.
- anything else: ``UnsupportedAttachment``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Awaitable, Callable, Protocol

from app.core.config import Settings, get_settings
from app.core.errors import RasterizationFailed, UnsupportedAttachment
from app.schemas.receipt import Attachment, CanonicalRecord, RawMedia
from app.services import pdf_text, rasterizer
from app.services.ai.receipt_extract import service as field_extractor
from app.utils.alerting import alert_tracker

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"


class PdfKind(StrEnum):
    DIGITAL = "digital"
    SCANNED = "scanned"


class MediaFetcher(Protocol):
    async def fetch_media(self, media_id: str) -> RawMedia: ...


def mime_family(mime_type: str | None) -> str:
    """``"image/jpeg; q=1"`` -> ``"image/jpeg"`` (lower-cased, parameters dropped)."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def is_supported_mime(mime_type: str | None) -> bool:
    base = mime_family(mime_type)
    return base.startswith("image/") or base == PDF_MIME


def classify_pdf_text(text: str, *, min_chars: int = 20) -> PdfKind:
    """Digital when the whitespace-stripped text is longer than *min_chars*."""
    if pdf_text.stripped_length(text) > min_chars:
        return PdfKind.DIGITAL
    return PdfKind.SCANNED


class ExtractionOrchestrator:
    def __init__(
        self,
        media_fetcher: MediaFetcher,
        *,
        settings: Settings | None = None,
        text_extractor: Callable[[bytes], str] = pdf_text.try_extract_text,
        rasterize: Callable[..., Awaitable[bytes]] = rasterizer.rasterize_first_page,
        extract_from_text: Callable[[str], Awaitable[CanonicalRecord]] = field_extractor.extract_from_text,
        extract_from_image: Callable[[bytes, str], Awaitable[CanonicalRecord]] = field_extractor.extract_from_image,
    ) -> None:
        self._media_fetcher = media_fetcher
        self._settings = settings or get_settings()
        self._text_extractor = text_extractor
        self._rasterize = rasterize
        self._extract_from_text = extract_from_text
        self._extract_from_image = extract_from_image

    async def extract(self, attachment: Attachment) -> CanonicalRecord:
        declared = mime_family(attachment.mime_type)
        if declared and not is_supported_mime(declared):
            raise UnsupportedAttachment(declared)

        media = await self._media_fetcher.fetch_media(attachment.media_id)
        family = declared or mime_family(media.mime_type)

        if family.startswith("image/"):
            record = await self._extract_from_image(media.content, family)
        elif family == PDF_MIME:
            record = await self._extract_pdf(media.content)
        else:
            raise UnsupportedAttachment(family)

        return record.model_copy(update={"source_file_url": media.source_url})

    async def _extract_pdf(self, content: bytes) -> CanonicalRecord:
        settings = self._settings
        text = await asyncio.to_thread(self._text_extractor, content)
        kind = classify_pdf_text(text, min_chars=settings.pdf_digital_min_chars)

        if kind is PdfKind.DIGITAL:
            logger.info("Digital PDF detected (%d chars) — using text extraction", len(text))
            record = await self._extract_from_text(text[: settings.pdf_text_max_chars])
            return record.model_copy(update={"raw_text": text})

        logger.info("Scanned PDF detected — rasterizing page 1")
        try:
            image = await self._rasterize(
                content,
                dpi=settings.rasterize_dpi,
                timeout_seconds=settings.rasterize_timeout_seconds,
            )
        except RasterizationFailed as exc:
            logger.warning("Rasterization failed, continuing with an empty record: %s", exc)
            alert_tracker.record("RASTERIZATION_FAILED", {"error": str(exc)[:200]})
            return CanonicalRecord.empty()

        return await self._extract_from_image(image, "image/png")
