from functools import lru_cache

from app.core.config import get_settings
from app.services.conversation_service import ReceiptConversationService
from app.services.extraction_orchestrator import ExtractionOrchestrator
from app.services.pending_store import PendingStore
from app.services.submitter import Submitter
from app.services.whatsapp_client import WhatsAppClient


@lru_cache
def get_pending_store() -> PendingStore:
    # Process-wide: pending receipts live only as long as this process.
    return PendingStore(ttl_seconds=get_settings().pending_ttl_seconds)


def get_whatsapp_client() -> WhatsAppClient:
    return WhatsAppClient(get_settings())


def get_conversation_service() -> ReceiptConversationService:
    settings = get_settings()
    whatsapp = WhatsAppClient(settings)
    return ReceiptConversationService(
        extractor=ExtractionOrchestrator(whatsapp, settings=settings),
        submitter=Submitter(settings),
        store=get_pending_store(),
        settings=settings,
    )
