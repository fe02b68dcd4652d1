from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )

    environment: str = "development"
    log_level: str = "INFO"
    port: int = 3000
    docs_enabled: bool = True
    expose_error_details: bool = False

    # --- WhatsApp Cloud API ---
    whatsapp_verify_token: str = Field(
        default="",
        validation_alias=AliasChoices("WHATSAPP_VERIFY_TOKEN", "VERIFY_TOKEN_META"),
    )
    whatsapp_token: str = ""
    whatsapp_phone_number_id: str = Field(
        default="",
        validation_alias=AliasChoices("WHATSAPP_PHONE_NUMBER_ID", "PHONE_NUMBER_ID"),
    )
    whatsapp_graph_api_base: str = "https://graph.facebook.com/v19.0"
    media_timeout_seconds: float = 20.0
    max_media_bytes: int = 16 * 1024 * 1024

    # --- Extraction service ---
    ai_extract_provider: str = "openai"
    ai_extract_model: str = ""
    ai_allowed_providers_raw: str = Field(
        default="openai,claude,mock",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS"),
    )
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ai_timeout_seconds: float = 45.0
    ai_max_tokens: int = 1500
    ai_temperature: float = 0.0

    # --- Downstream bookkeeping sink ---
    downstream_submit_url: str = Field(
        default="",
        validation_alias=AliasChoices("DOWNSTREAM_SUBMIT_URL", "MOCHA_OCR_URL"),
    )
    downstream_timeout_seconds: float = 15.0

    # --- Conversation ---
    confirmation_token: str = "SIM"
    phone_country_code: str = "55"
    pending_ttl_seconds: int = 0
    pending_sweep_interval_seconds: int = 300

    # --- Document pipeline ---
    pdf_digital_min_chars: int = 20
    pdf_text_max_chars: int = 16000
    rasterize_dpi: int = 200
    rasterize_timeout_seconds: float = 60.0
    vision_max_dimension: int = 2000

    pii_redaction_enabled: bool = True
    rate_limit_webhook_enabled: bool = True
    rate_limit_sender_per_min: int = 20

    @field_validator("confirmation_token")
    @classmethod
    def _normalize_token(cls, value: str) -> str:
        return (value or "SIM").strip().upper()

    @property
    def ai_allowed_providers(self) -> list[str]:
        raw = self.ai_allowed_providers_raw or ""
        return [item.strip().lower() for item in raw.split(",") if item.strip()]

    def validate_required_config(self) -> list[str]:
        """Return one message per missing credential; the capability named in it is degraded."""
        problems: list[str] = []
        if not self.whatsapp_verify_token:
            problems.append("WHATSAPP_VERIFY_TOKEN missing: webhook verification will be rejected")
        if not self.whatsapp_token:
            problems.append("WHATSAPP_TOKEN missing: media download and replies disabled")
        if not self.whatsapp_phone_number_id:
            problems.append("WHATSAPP_PHONE_NUMBER_ID missing: replies disabled")
        provider = (self.ai_extract_provider or "").strip().lower()
        if provider == "openai" and not self.openai_api_key:
            problems.append("OPENAI_API_KEY missing: extraction falls back to mock provider")
        if provider == "claude" and not self.anthropic_api_key:
            problems.append("ANTHROPIC_API_KEY missing: extraction falls back to mock provider")
        if not self.downstream_submit_url:
            problems.append("DOWNSTREAM_SUBMIT_URL missing: confirmed receipts cannot be submitted")
        return problems


@lru_cache
def get_settings() -> Settings:
    return Settings()
