from __future__ import annotations

import logging

import pytest

from app.core.config import Settings, get_settings


def test_env_aliases_are_accepted(monkeypatch):
    monkeypatch.setenv("VERIFY_TOKEN_META", "legacy-verify")
    monkeypatch.setenv("PHONE_NUMBER_ID", "99887766")
    monkeypatch.setenv("MOCHA_OCR_URL", "https://sink.example.test/ocr")
    monkeypatch.setenv("AI_ALLOWED_PROVIDERS", " OpenAI , mock ,")

    settings = get_settings()

    assert settings.whatsapp_verify_token == "legacy-verify"
    assert settings.whatsapp_phone_number_id == "99887766"
    assert settings.downstream_submit_url == "https://sink.example.test/ocr"
    assert settings.ai_allowed_providers == ["openai", "mock"]


def test_confirmation_token_is_normalized():
    assert Settings(confirmation_token="  sim ").confirmation_token == "SIM"
    assert Settings(confirmation_token="").confirmation_token == "SIM"


def test_validate_required_config_lists_missing_credentials():
    problems = Settings(
        whatsapp_verify_token="",
        whatsapp_token="",
        whatsapp_phone_number_id="",
        ai_extract_provider="openai",
        openai_api_key="",
        downstream_submit_url="",
    ).validate_required_config()

    joined = "\n".join(problems)
    for name in (
        "WHATSAPP_VERIFY_TOKEN",
        "WHATSAPP_TOKEN",
        "WHATSAPP_PHONE_NUMBER_ID",
        "OPENAI_API_KEY",
        "DOWNSTREAM_SUBMIT_URL",
    ):
        assert name in joined


def test_validate_required_config_complete():
    settings = Settings(
        whatsapp_verify_token="v",
        whatsapp_token="t",
        whatsapp_phone_number_id="1",
        ai_extract_provider="claude",
        anthropic_api_key="k",
        downstream_submit_url="https://sink.example.test",
    )
    assert settings.validate_required_config() == []


@pytest.mark.asyncio
async def test_startup_logs_warning_only_on_config_errors(monkeypatch, caplog):
    from app import main as app_main

    monkeypatch.setattr(type(app_main.settings), "validate_required_config", lambda _self: ["missing secret"])
    monkeypatch.setattr(app_main, "pdftoppm_available", lambda: False)
    monkeypatch.setattr(app_main, "start_pending_expiry_worker", lambda: None)

    with caplog.at_level(logging.WARNING, logger="app.main"):
        await app_main._startup_checks()

    messages = [r.getMessage() for r in caplog.records]
    assert "ConfigMissing: missing secret" in messages
    assert any("pdftoppm" in m for m in messages)

    await app_main._shutdown_jobs()
