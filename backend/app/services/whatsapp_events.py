"""WhatsApp Cloud API webhook envelope -> ``InboundMessage`` list.

Envelope shape::

    {"entry": [{"changes": [{"value": {
        "contacts": [{"wa_id": "...", "profile": {"name": "..."}}],
        "messages": [{"from": "...", "id": "...", "type": "text|image|document|...",
                      "text": {"body": "..."},
                      "image": {"id": "...", "mime_type": "..."},
                      "document": {"id": "...", "mime_type": "...", "filename": "..."}}],
        "statuses": [...]
    }}]}]}

Status callbacks and malformed items are skipped, never raised.
"""

from __future__ import annotations

import logging
from typing import Any

from app.schemas.receipt import Attachment, InboundMessage, MessageType

logger = logging.getLogger(__name__)

_ATTACHMENT_TYPES = {"image": MessageType.IMAGE, "document": MessageType.DOCUMENT}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _contact_names(value: dict[str, Any]) -> dict[str, str]:
    names: dict[str, str] = {}
    for contact in _as_list(value.get("contacts")):
        contact = _as_dict(contact)
        wa_id = str(contact.get("wa_id") or "")
        name = str(_as_dict(contact.get("profile")).get("name") or "")
        if wa_id:
            names[wa_id] = name
    return names


def _parse_message(raw: dict[str, Any], names: dict[str, str]) -> InboundMessage | None:
    sender = str(raw.get("from") or "").strip()
    if not sender:
        return None

    raw_type = str(raw.get("type") or "").strip().lower()
    common = {
        "sender_id": sender,
        "message_id": str(raw.get("id") or ""),
        "sender_name": names.get(sender, ""),
        "raw_type": raw_type,
    }

    if raw_type == "text":
        body = _as_dict(raw.get("text")).get("body")
        return InboundMessage(message_type=MessageType.TEXT, text=str(body or ""), **common)

    if raw_type in _ATTACHMENT_TYPES:
        media = _as_dict(raw.get(raw_type))
        media_id = str(media.get("id") or "")
        if not media_id:
            logger.info("Attachment message without media id skipped (type=%s)", raw_type)
            return InboundMessage(message_type=MessageType.UNSUPPORTED, **common)
        size = media.get("file_size")
        attachment = Attachment(
            media_id=media_id,
            mime_type=str(media.get("mime_type") or ""),
            size_hint=size if isinstance(size, int) else None,
            filename=str(media.get("filename") or "") or None,
            kind=_ATTACHMENT_TYPES[raw_type],
        )
        return InboundMessage(message_type=_ATTACHMENT_TYPES[raw_type], attachment=attachment, **common)

    return InboundMessage(message_type=MessageType.UNSUPPORTED, **common)


def parse_inbound_messages(payload: Any) -> list[InboundMessage]:
    messages: list[InboundMessage] = []
    for entry in _as_list(_as_dict(payload).get("entry")):
        for change in _as_list(_as_dict(entry).get("changes")):
            value = _as_dict(_as_dict(change).get("value"))
            names = _contact_names(value)
            for raw in _as_list(value.get("messages")):
                message = _parse_message(_as_dict(raw), names)
                if message is not None:
                    messages.append(message)
    return messages
