"""Per-sender confirmation state machine.

States: ``IDLE`` (nothing pending) and ``AWAITING_CONFIRMATION`` (one
extracted record waiting for the sender's confirmation token).

- attachment, any state -> extract -> put -> AWAITING_CONFIRMATION
- confirmation token, AWAITING_CONFIRMATION -> take -> submit -> IDLE
- confirmation token, IDLE -> "nothing pending"
- other text -> acknowledgment, unchanged
- other message types -> "unsupported", unchanged

Every pipeline failure stops here and becomes one user notice.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

from app.core.config import Settings, get_settings
from app.core.errors import DownstreamError, ExtractionServiceError, MediaUnavailable, UnsupportedAttachment
from app.schemas.receipt import (
    Attachment,
    CanonicalRecord,
    ConversationOutcome,
    ConversationState,
    InboundMessage,
    MessageType,
    PendingEntry,
)
from app.services import reply_templates
from app.services.normalization import redact_phone
from app.services.pending_store import PendingStore
from app.utils.alerting import alert_tracker

logger = logging.getLogger(__name__)


class RecordExtractor(Protocol):
    async def extract(self, attachment: Attachment) -> CanonicalRecord: ...


class RecordSubmitter(Protocol):
    async def submit(self, entry: PendingEntry) -> dict[str, Any]: ...


def _norm(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().upper())


def is_confirmation(text: str, token: str = "SIM") -> bool:
    return _norm(text) == _norm(token)


class ReceiptConversationService:
    def __init__(
        self,
        *,
        extractor: RecordExtractor,
        submitter: RecordSubmitter,
        store: PendingStore,
        settings: Settings | None = None,
    ) -> None:
        self._extractor = extractor
        self._submitter = submitter
        self._store = store
        self._settings = settings or get_settings()

    @property
    def store(self) -> PendingStore:
        return self._store

    def _log_sender(self, sender_id: str) -> str:
        return redact_phone(sender_id) if self._settings.pii_redaction_enabled else sender_id

    async def handle(self, message: InboundMessage) -> ConversationOutcome:
        async with self._store.locked(message.sender_id):
            if message.message_type in (MessageType.IMAGE, MessageType.DOCUMENT) and message.attachment:
                return await self._on_attachment(message.sender_id, message.attachment)
            if message.message_type is MessageType.TEXT:
                return await self._on_text(message.sender_id, message.text)
            return self._outcome(message.sender_id, reply_templates.UNSUPPORTED_MESSAGE, "unsupported")

    def _outcome(self, sender_id: str, reply: str, status: str) -> ConversationOutcome:
        return ConversationOutcome(reply=reply, state=self._store.state_of(sender_id), status=status)

    async def _on_attachment(self, sender_id: str, attachment: Attachment) -> ConversationOutcome:
        log_sender = self._log_sender(sender_id)
        try:
            record = await self._extractor.extract(attachment)
        except UnsupportedAttachment as exc:
            logger.info("Unsupported attachment from=%s mime=%s", log_sender, exc.mime_type)
            return self._outcome(sender_id, reply_templates.UNSUPPORTED_ATTACHMENT, "unsupported_attachment")
        except MediaUnavailable as exc:
            logger.warning("Media unavailable from=%s: %s", log_sender, exc)
            alert_tracker.record("MEDIA_FETCH_FAILED", {"media_id": attachment.media_id})
            return self._outcome(sender_id, reply_templates.MEDIA_UNAVAILABLE, "media_unavailable")
        except ExtractionServiceError as exc:
            logger.warning("Extraction service failed from=%s: %s", log_sender, exc)
            alert_tracker.record("EXTRACTION_SERVICE_FAILED", {"media_id": attachment.media_id})
            return self._outcome(sender_id, reply_templates.EXTRACTION_FAILED, "extraction_failed")

        replaced = self._store.put(sender_id, record)
        if replaced is not None:
            logger.info("Replaced unconfirmed receipt from=%s", log_sender)
        logger.info("Receipt pending confirmation from=%s empty=%s", log_sender, record.is_empty())

        reply = reply_templates.receipt_summary(
            record,
            confirmation_token=self._settings.confirmation_token,
            replaced=replaced is not None,
        )
        return ConversationOutcome(reply=reply, state=ConversationState.AWAITING_CONFIRMATION, status="pending")

    async def _on_text(self, sender_id: str, text: str) -> ConversationOutcome:
        if not is_confirmation(text, self._settings.confirmation_token):
            return self._outcome(sender_id, reply_templates.ACKNOWLEDGED, "acknowledged")

        entry = self._store.take(sender_id)
        if entry is None:
            return ConversationOutcome(
                reply=reply_templates.NOTHING_PENDING,
                state=ConversationState.IDLE,
                status="nothing_pending",
            )

        log_sender = self._log_sender(sender_id)
        try:
            await self._submitter.submit(entry)
        except DownstreamError as exc:
            logger.warning("Submission failed from=%s: %s", log_sender, exc)
            alert_tracker.record("DOWNSTREAM_SUBMIT_FAILED", {"status_code": exc.status_code})
            return ConversationOutcome(
                reply=reply_templates.SUBMIT_FAILED,
                state=ConversationState.IDLE,
                status="submit_failed",
            )

        logger.info("Receipt submitted from=%s", log_sender)
        return ConversationOutcome(reply=reply_templates.SUBMITTED, state=ConversationState.IDLE, status="submitted")
