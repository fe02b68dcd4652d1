"""Receipt intake schemas — attachments, canonical records, pending entries."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.services.normalization import normalize_amount

STRUCTURED_FIELDS = ("supplier", "tax_id", "amount", "document_date", "description")


class ConversationState(StrEnum):
    IDLE = "IDLE"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    UNSUPPORTED = "unsupported"


class Attachment(BaseModel):
    media_id: str
    mime_type: str = ""
    size_hint: Optional[int] = None
    filename: Optional[str] = None
    kind: MessageType = MessageType.DOCUMENT


class RawMedia(BaseModel):
    content: bytes
    mime_type: str = ""
    source_url: str = ""


class CanonicalRecord(BaseModel):
    """Normalized receipt fields. Unset fields are always ``""``, never ``None``.

    Accepts the model's snake_case keys, camelCase keys and the Portuguese
    keys the bookkeeping system uses (``fornecedor``, ``cnpj``, ...).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    supplier: str = Field(default="", validation_alias=AliasChoices("supplier", "fornecedor"))
    tax_id: str = Field(default="", validation_alias=AliasChoices("tax_id", "taxId", "cnpj"))
    amount: str = Field(default="", validation_alias=AliasChoices("amount", "valor"))
    document_date: str = Field(
        default="", validation_alias=AliasChoices("document_date", "documentDate", "data")
    )
    description: str = Field(default="", validation_alias=AliasChoices("description", "descricao"))
    raw_text: str = Field(
        default="", validation_alias=AliasChoices("raw_text", "rawText", "texto_completo", "texto_ocr")
    )
    source_file_url: str = Field(
        default="", validation_alias=AliasChoices("source_file_url", "sourceFileUrl", "fileUrl")
    )

    @field_validator(
        "supplier", "tax_id", "document_date", "description", "raw_text", "source_file_url", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return ""
        return str(value).strip()

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> str:
        return normalize_amount(value)

    @classmethod
    def empty(cls, *, raw_text: str = "", source_file_url: str = "") -> CanonicalRecord:
        return cls(raw_text=raw_text, source_file_url=source_file_url)

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in STRUCTURED_FIELDS)


class PendingEntry(BaseModel):
    sender_id: str
    record: CanonicalRecord
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InboundMessage(BaseModel):
    """Channel-neutral inbound event."""

    sender_id: str
    message_type: MessageType
    text: str = ""
    attachment: Optional[Attachment] = None
    message_id: str = ""
    sender_name: str = ""
    raw_type: str = ""


class ConversationOutcome(BaseModel):
    reply: str
    state: ConversationState
    status: str
