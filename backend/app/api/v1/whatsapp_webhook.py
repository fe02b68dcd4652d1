"""WhatsApp Cloud API webhook — verification handshake and inbound messages."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.core.config import get_settings
from app.core.dependencies import get_conversation_service, get_whatsapp_client
from app.schemas.receipt import ConversationOutcome
from app.services import reply_templates
from app.services.conversation_service import ReceiptConversationService
from app.services.normalization import redact_phone
from app.services.whatsapp_client import WhatsAppClient
from app.services.whatsapp_events import parse_inbound_messages
from app.utils.alerting import alert_tracker
from app.utils.rate_limit import rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter()


def _query_param(request: Request, name: str) -> str:
    # Meta sends hub.mode / hub.verify_token / hub.challenge; plain names are accepted too.
    return request.query_params.get(f"hub.{name}") or request.query_params.get(name) or ""


def verify_subscription(mode: str, token: str, expected_token: str) -> bool:
    if mode != "subscribe" or not expected_token or not token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8"))


@router.get("/webhook/whatsapp")
async def whatsapp_verify(request: Request):
    settings = get_settings()
    mode = _query_param(request, "mode")
    token = _query_param(request, "verify_token")
    challenge = _query_param(request, "challenge")

    if not verify_subscription(mode, token, settings.whatsapp_verify_token):
        logger.warning("Webhook verification rejected (mode=%r)", mode)
        alert_tracker.record("WEBHOOK_VERIFY_REJECTED", {"mode": mode})
        return PlainTextResponse("Forbidden", status_code=403)

    logger.info("Webhook verified")
    return PlainTextResponse(challenge)


@router.post("/webhook/whatsapp")
async def whatsapp_events(
    request: Request,
    service: ReceiptConversationService = Depends(get_conversation_service),
    whatsapp: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Inbound message handler.

    Always answers 200 so the channel does not redeliver: malformed bodies
    and status-only callbacks are reported as ``ignored``. Each message is
    processed, one reply is sent back to its sender, and the per-message
    outcome is returned for observability.
    """
    settings = get_settings()
    try:
        payload = await request.json()
    except ValueError:
        logger.info("[WEBHOOK] Body is not JSON — ignored")
        return {"status": "ignored"}

    messages = parse_inbound_messages(payload)
    if not messages:
        logger.info("[WEBHOOK] No messages in payload — ignored")
        return {"status": "ignored"}

    results = []
    for message in messages:
        log_from = redact_phone(message.sender_id) if settings.pii_redaction_enabled else message.sender_id

        limited = settings.rate_limit_webhook_enabled and not rate_limiter.allow_sender(
            message.sender_id, settings.rate_limit_sender_per_min
        )
        if limited:
            # Pending state is left untouched; the sender only gets the notice.
            logger.warning("[WEBHOOK] Rate limit hit from=%s", log_from)
            alert_tracker.record("RATE_LIMIT_BLOCKED", {"channel": "whatsapp"})
            outcome = ConversationOutcome(
                reply=reply_templates.RATE_LIMITED,
                state=service.store.state_of(message.sender_id),
                status="rate_limited",
            )
        else:
            logger.info("[WEBHOOK] Message from=%s type=%s", log_from, message.raw_type or message.message_type)
            try:
                outcome = await service.handle(message)
            except Exception:
                logger.exception("[WEBHOOK] Unexpected failure handling message from=%s — continuing", log_from)
                outcome = ConversationOutcome(
                    reply=reply_templates.GENERIC_ERROR,
                    state=service.store.state_of(message.sender_id),
                    status="error",
                )

        sent = await whatsapp.send_text(message.sender_id, outcome.reply)
        if not sent:
            alert_tracker.record("REPLY_SEND_FAILED", {"status": outcome.status})

        results.append(
            {
                "message_id": message.message_id,
                "status": outcome.status,
                "state": outcome.state.value,
                "reply_sent": sent,
            }
        )

    if all(r["status"] == "rate_limited" for r in results):
        return {"status": "rate_limited", "results": results}
    return {"status": "ok", "results": results}
