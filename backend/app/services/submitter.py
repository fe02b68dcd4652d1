"""Submission of confirmed receipts to the bookkeeping sink."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.core.errors import DownstreamError
from app.schemas.receipt import PendingEntry
from app.services.normalization import normalize_date, normalize_phone, normalize_tax_id, redact_phone

logger = logging.getLogger(__name__)


def build_submission_payload(entry: PendingEntry, *, country_code: str = "55") -> dict[str, Any]:
    """Map a pending entry onto the sink's field names."""
    record = entry.record
    return {
        "userPhone": normalize_phone(entry.sender_id, country_code),
        "fileUrl": record.source_file_url,
        "fornecedor": record.supplier,
        "cnpj": normalize_tax_id(record.tax_id),
        "valor": record.amount,
        "data": normalize_date(record.document_date),
        "descricao": record.description,
        "texto_ocr": record.raw_text,
    }


class Submitter:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    async def submit(self, entry: PendingEntry) -> dict[str, Any]:
        """POST the entry once. Returns the sink's JSON body (``{}`` when empty).

        Raises ``DownstreamError`` on a missing URL, transport failure,
        non-2xx status, or a body that is present but not JSON. Never retries.
        """
        settings = self._settings
        if not settings.downstream_submit_url:
            raise DownstreamError("DOWNSTREAM_SUBMIT_URL is not configured")

        payload = build_submission_payload(entry, country_code=settings.phone_country_code)
        log_phone = redact_phone(payload["userPhone"]) if settings.pii_redaction_enabled else payload["userPhone"]

        try:
            async with httpx.AsyncClient(
                timeout=settings.downstream_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(settings.downstream_submit_url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Downstream submission failed phone=%s: %s", log_phone, exc)
            raise DownstreamError(f"Downstream unreachable: {exc}") from exc

        if not resp.is_success:
            logger.warning(
                "Downstream rejected submission phone=%s status=%s body=%s",
                log_phone,
                resp.status_code,
                resp.text[:300],
            )
            raise DownstreamError(f"Downstream returned HTTP {resp.status_code}", status_code=resp.status_code)

        body: dict[str, Any] = {}
        if resp.content.strip():
            try:
                parsed = resp.json()
            except ValueError as exc:
                raise DownstreamError("Downstream returned a non-JSON body", status_code=resp.status_code) from exc
            body = parsed if isinstance(parsed, dict) else {"result": parsed}

        logger.info("Downstream submission accepted phone=%s status=%s", log_phone, resp.status_code)
        return body
