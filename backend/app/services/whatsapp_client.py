"""WhatsApp Cloud API client — media download and outbound text replies."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.core.errors import MediaUnavailable
from app.schemas.receipt import RawMedia
from app.services.normalization import redact_phone

logger = logging.getLogger(__name__)


class WhatsAppClient:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def _base(self) -> str:
        return self._settings.whatsapp_graph_api_base.rstrip("/")

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.whatsapp_token}"}

    def _log_to(self, to: str) -> str:
        return redact_phone(to) if self._settings.pii_redaction_enabled else to

    async def fetch_media(self, media_id: str) -> RawMedia:
        """Resolve *media_id* to a download URL and fetch the bytes.

        Two bearer-authenticated calls: metadata lookup, then the binary
        download. No retry.
        """
        if not media_id:
            raise MediaUnavailable("Missing media id")
        if not self._settings.whatsapp_token:
            raise MediaUnavailable("WHATSAPP_TOKEN is not configured")

        limit = self._settings.max_media_bytes
        async with httpx.AsyncClient(
            timeout=self._settings.media_timeout_seconds,
            transport=self._transport,
        ) as client:
            try:
                meta_resp = await client.get(f"{self._base}/{media_id}", headers=self._auth_headers())
            except httpx.HTTPError as exc:
                raise MediaUnavailable(f"Media lookup failed for {media_id}: {exc}") from exc
            if not meta_resp.is_success:
                raise MediaUnavailable(f"Media lookup for {media_id} returned HTTP {meta_resp.status_code}")

            try:
                meta: dict[str, Any] = meta_resp.json()
            except ValueError as exc:
                raise MediaUnavailable(f"Media lookup for {media_id} returned invalid JSON") from exc

            url = str(meta.get("url") or "")
            if not url:
                raise MediaUnavailable(f"Media {media_id} has no download URL")

            declared_size = meta.get("file_size")
            if isinstance(declared_size, int) and limit and declared_size > limit:
                raise MediaUnavailable(f"Media {media_id} is {declared_size} bytes (limit {limit})")

            try:
                file_resp = await client.get(url, headers=self._auth_headers())
            except httpx.HTTPError as exc:
                raise MediaUnavailable(f"Media download failed for {media_id}: {exc}") from exc
            if not file_resp.is_success:
                raise MediaUnavailable(f"Media download for {media_id} returned HTTP {file_resp.status_code}")

        content = file_resp.content
        if limit and len(content) > limit:
            raise MediaUnavailable(f"Media {media_id} is {len(content)} bytes (limit {limit})")

        mime_type = str(meta.get("mime_type") or file_resp.headers.get("content-type") or "")
        logger.info("Media fetched id=%s mime=%s bytes=%d", media_id, mime_type, len(content))
        return RawMedia(content=content, mime_type=mime_type, source_url=url)

    async def send_text(self, to: str, body: str) -> bool:
        """Send a text reply. Returns False (and logs) instead of raising."""
        settings = self._settings
        log_to = self._log_to(to)
        if not settings.whatsapp_token or not settings.whatsapp_phone_number_id:
            logger.warning("WhatsApp reply skipped to=%s: channel credentials not configured", log_to)
            return False

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        url = f"{self._base}/{settings.whatsapp_phone_number_id}/messages"
        try:
            async with httpx.AsyncClient(
                timeout=settings.media_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    url,
                    headers={**self._auth_headers(), "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError:
            logger.exception("WhatsApp reply failed to=%s", log_to)
            return False

        if not resp.is_success:
            logger.warning("WhatsApp reply rejected to=%s status=%s body=%s", log_to, resp.status_code, resp.text[:300])
            return False

        logger.info("WhatsApp reply sent to=%s", log_to)
        return True
