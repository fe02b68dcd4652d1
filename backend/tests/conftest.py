import os

import httpx
import pytest
import pytest_asyncio

from app.core.config import get_settings
from app.core.dependencies import get_pending_store
from app.schemas.receipt import Attachment, CanonicalRecord, InboundMessage, MessageType
from app.utils.alerting import alert_tracker
from app.utils.rate_limit import rate_limiter

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:3000")

SENDER = "5511987654321"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_process_state():
    # Pending receipts, rate-limit buckets and alert counters are process-wide.
    get_pending_store.cache_clear()
    rate_limiter.reset()
    alert_tracker.reset()
    yield
    get_pending_store.cache_clear()
    rate_limiter.reset()
    alert_tracker.reset()


def sample_record(**overrides) -> CanonicalRecord:
    data = {
        "supplier": "ACME LTDA",
        "tax_id": "12.345.678/0001-90",
        "amount": "150.00",
        "document_date": "05/03/2024",
        "description": "Material de escritório",
        "raw_text": "ACME LTDA ... R$ 150,00",
    }
    data.update(overrides)
    return CanonicalRecord(**data)


def text_message(body: str, sender: str = SENDER) -> InboundMessage:
    return InboundMessage(sender_id=sender, message_type=MessageType.TEXT, text=body)


def document_message(
    media_id: str = "media-1", mime_type: str = "application/pdf", sender: str = SENDER
) -> InboundMessage:
    return InboundMessage(
        sender_id=sender,
        message_type=MessageType.DOCUMENT,
        attachment=Attachment(media_id=media_id, mime_type=mime_type, kind=MessageType.DOCUMENT),
    )


def whatsapp_payload(*messages: dict, contacts: list | None = None) -> dict:
    value: dict = {"messaging_product": "whatsapp", "messages": list(messages)}
    if contacts is not None:
        value["contacts"] = contacts
    return {"object": "whatsapp_business_account", "entry": [{"changes": [{"field": "messages", "value": value}]}]}


@pytest_asyncio.fixture
async def client():
    # Default: in-process ASGI tests (no uvicorn needed).
    # Set USE_LIVE_SERVER=true to run against a running server at BASE_URL (useful for manual smoke tests).
    use_live_server = os.getenv("USE_LIVE_SERVER", "").strip().lower() in {"1", "true", "yes"}
    if use_live_server:
        async with httpx.AsyncClient(base_url=BASE_URL) as c:
            yield c
        return

    from app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
