"""Tests for the per-sender confirmation state machine.

Covers:
- image -> summary -> confirmation -> single submission
- confirmation with nothing pending
- a newer attachment replaces an unconfirmed one
- pipeline failures mapped to user notices without state changes
- empty extraction still awaits confirmation
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.config import Settings
from app.core.errors import DownstreamError, ExtractionServiceError, MediaUnavailable, UnsupportedAttachment
from app.schemas.receipt import Attachment, CanonicalRecord, ConversationState, InboundMessage, MessageType
from app.services import reply_templates
from app.services.conversation_service import ReceiptConversationService, is_confirmation
from app.services.pending_store import PendingStore
from app.utils.alerting import alert_tracker
from conftest import SENDER, document_message, sample_record, text_message


def _service(extract=None, submit=None, store=None) -> ReceiptConversationService:
    extractor = MagicMock()
    extractor.extract = extract or AsyncMock(return_value=sample_record())
    submitter = MagicMock()
    submitter.submit = submit or AsyncMock(return_value={})
    return ReceiptConversationService(
        extractor=extractor,
        submitter=submitter,
        store=store or PendingStore(),
        settings=Settings(),
    )


def _image_message(sender: str = SENDER) -> InboundMessage:
    return InboundMessage(
        sender_id=sender,
        message_type=MessageType.IMAGE,
        attachment=Attachment(media_id="img-1", mime_type="image/jpeg", kind=MessageType.IMAGE),
    )


@pytest.mark.parametrize("text", ["SIM", "sim", "  Sim  ", "SIM\n"])
def test_is_confirmation_accepts_case_and_whitespace(text):
    assert is_confirmation(text, "SIM") is True


@pytest.mark.parametrize("text", ["", "SIM!", "sim, pode lançar", "NÃO", "S I M"])
def test_is_confirmation_rejects_other_text(text):
    assert is_confirmation(text, "SIM") is False


@pytest.mark.asyncio
async def test_attachment_then_confirmation_submits_once():
    record = sample_record(
        supplier="ACME",
        tax_id="12.345.678/0001-99",
        amount="150.00",
        document_date="10/01/2025",
        description="Materials",
    )
    service = _service(extract=AsyncMock(return_value=record))

    first = await service.handle(_image_message())
    assert first.status == "pending"
    assert first.state is ConversationState.AWAITING_CONFIRMATION
    assert "Fornecedor: ACME" in first.reply
    assert "CNPJ: 12.345.678/0001-99" in first.reply
    assert "Valor: 150.00" in first.reply
    assert "*SIM*" in first.reply

    second = await service.handle(text_message("SIM"))
    assert second.status == "submitted"
    assert second.state is ConversationState.IDLE
    assert second.reply == reply_templates.SUBMITTED

    service._submitter.submit.assert_awaited_once()
    entry = service._submitter.submit.await_args.args[0]
    assert entry.sender_id == SENDER
    assert entry.record == record


@pytest.mark.asyncio
async def test_confirmation_with_nothing_pending():
    service = _service()

    outcome = await service.handle(text_message("SIM"))

    assert outcome.status == "nothing_pending"
    assert outcome.reply == reply_templates.NOTHING_PENDING
    assert outcome.state is ConversationState.IDLE
    service._submitter.submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_newer_attachment_replaces_unconfirmed_one():
    record_a = sample_record(supplier="Fornecedor A")
    record_b = sample_record(supplier="Fornecedor B")
    service = _service(extract=AsyncMock(side_effect=[record_a, record_b]))

    await service.handle(document_message("doc-a"))
    replaced = await service.handle(document_message("doc-b"))
    assert reply_templates.REPLACED_NOTICE in replaced.reply
    assert service.store.peek(SENDER).record.supplier == "Fornecedor B"

    await service.handle(text_message("sim"))
    service._submitter.submit.assert_awaited_once()
    assert service._submitter.submit.await_args.args[0].record.supplier == "Fornecedor B"


@pytest.mark.asyncio
async def test_empty_extraction_still_awaits_confirmation():
    service = _service(extract=AsyncMock(return_value=CanonicalRecord.empty()))

    outcome = await service.handle(document_message())

    assert outcome.status == "pending"
    assert outcome.state is ConversationState.AWAITING_CONFIRMATION
    assert outcome.reply.count("N/D") == 5


@pytest.mark.asyncio
async def test_other_text_is_acknowledged_without_state_change():
    service = _service()
    await service.handle(document_message())

    outcome = await service.handle(text_message("obrigado"))

    assert outcome.status == "acknowledged"
    assert outcome.reply == reply_templates.ACKNOWLEDGED
    assert outcome.state is ConversationState.AWAITING_CONFIRMATION


@pytest.mark.asyncio
async def test_unsupported_message_type():
    service = _service()
    outcome = await service.handle(InboundMessage(sender_id=SENDER, message_type=MessageType.UNSUPPORTED))
    assert outcome.status == "unsupported"
    assert outcome.reply == reply_templates.UNSUPPORTED_MESSAGE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, status, reply",
    [
        (UnsupportedAttachment("application/zip"), "unsupported_attachment", reply_templates.UNSUPPORTED_ATTACHMENT),
        (MediaUnavailable("HTTP 404"), "media_unavailable", reply_templates.MEDIA_UNAVAILABLE),
        (ExtractionServiceError("HTTP 503"), "extraction_failed", reply_templates.EXTRACTION_FAILED),
    ],
)
async def test_extraction_failures_become_notices(error, status, reply):
    store = PendingStore()
    store.put(SENDER, sample_record(supplier="Earlier"))
    service = _service(extract=AsyncMock(side_effect=error), store=store)

    outcome = await service.handle(document_message())

    assert outcome.status == status
    assert outcome.reply == reply
    # An earlier unconfirmed receipt is left untouched.
    assert outcome.state is ConversationState.AWAITING_CONFIRMATION
    assert store.peek(SENDER).record.supplier == "Earlier"


@pytest.mark.asyncio
async def test_submit_failure_consumes_entry():
    service = _service(submit=AsyncMock(side_effect=DownstreamError("HTTP 500", status_code=500)))
    await service.handle(document_message())

    outcome = await service.handle(text_message("SIM"))

    assert outcome.status == "submit_failed"
    assert outcome.reply == reply_templates.SUBMIT_FAILED
    assert outcome.state is ConversationState.IDLE
    assert service.store.peek(SENDER) is None
    assert alert_tracker.count("DOWNSTREAM_SUBMIT_FAILED") == 1

    again = await service.handle(text_message("SIM"))
    assert again.status == "nothing_pending"


@pytest.mark.asyncio
async def test_duplicate_confirmations_submit_once():
    async def slow_submit(entry):
        await asyncio.sleep(0.01)
        return {}

    service = _service(submit=AsyncMock(side_effect=slow_submit))
    await service.handle(document_message())

    outcomes = await asyncio.gather(*(service.handle(text_message("SIM")) for _ in range(5)))

    assert service._submitter.submit.await_count == 1
    assert sorted(o.status for o in outcomes) == ["nothing_pending"] * 4 + ["submitted"]


@pytest.mark.asyncio
async def test_custom_confirmation_token():
    service = ReceiptConversationService(
        extractor=MagicMock(extract=AsyncMock(return_value=sample_record())),
        submitter=MagicMock(submit=AsyncMock(return_value={})),
        store=PendingStore(),
        settings=Settings(confirmation_token=" ok "),
    )
    pending = await service.handle(document_message())
    assert "*OK*" in pending.reply

    assert (await service.handle(text_message("SIM"))).status == "acknowledged"
    assert (await service.handle(text_message("ok"))).status == "submitted"
