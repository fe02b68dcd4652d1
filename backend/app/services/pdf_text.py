"""Native PDF text-layer extraction using pdfplumber.

Fast path for digital PDFs: no model call, no network. A document that
cannot be parsed is not an error here; scanned receipts wrapped in a PDF
container legitimately carry no text, so every failure yields ``""``.
"""

from __future__ import annotations

import io
import logging
import re

import pdfplumber

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def try_extract_text(content: bytes) -> str:
    """Return the embedded text of every page joined by newlines, or ``""``."""
    if not content:
        return ""

    parts: list[str] = []
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    parts.append(page_text)
    except Exception:
        logger.warning("PDF text layer could not be parsed (%d bytes)", len(content), exc_info=True)
        return ""

    return "\n".join(parts)


def stripped_length(text: str) -> int:
    """Length of *text* with all whitespace removed."""
    return len(_WHITESPACE_RE.sub("", text or ""))
