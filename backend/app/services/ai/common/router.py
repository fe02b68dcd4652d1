"""AI Router — picks the provider + model used for receipt extraction."""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass

from app.core.config import Settings, get_settings

from .providers.base import BaseProvider
from .providers.mock import MockProvider

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "claude": "claude-3-5-haiku-20241022",
    "mock": "",
}

# name -> (module under .providers, class, Settings field holding the API key)
_HOSTED_PROVIDERS = {
    "openai": ("openai", "OpenAIProvider", "openai_api_key"),
    "claude": ("claude", "ClaudeProvider", "anthropic_api_key"),
}


@dataclass(frozen=True)
class ResolvedConfig:
    """Final resolved provider + model."""

    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


def build_provider(name: str, settings: Settings) -> BaseProvider:
    """Instantiate the hosted provider *name*, or ``MockProvider``.

    Mock is used when the name is ``mock``, not allow-listed, unknown, or
    its API key is empty. Hosted providers are imported lazily.
    """
    name = name.lower().strip()
    if name == "mock":
        return MockProvider()
    if name not in settings.ai_allowed_providers:
        logger.warning("Provider %r not in allowlist – extracting with mock", name)
        return MockProvider()

    entry = _HOSTED_PROVIDERS.get(name)
    if entry is None:
        logger.warning("Unknown provider %r – extracting with mock", name)
        return MockProvider()

    module_name, class_name, key_field = entry
    api_key = getattr(settings, key_field)
    if not api_key:
        logger.warning("%s not set – extracting with mock", key_field.upper())
        return MockProvider()

    module = importlib.import_module(f"{__package__}.providers.{module_name}")
    return getattr(module, class_name)(api_key=api_key)


def resolve(*, override_provider: str | None = None, override_model: str | None = None) -> ResolvedConfig:
    """Resolve provider + model.

    Resolution chain (first non-empty wins):
      1. ``override_provider`` / ``override_model`` (callers and tests).
      2. ENV: ``AI_EXTRACT_PROVIDER`` / ``AI_EXTRACT_MODEL``.
      3. Fallback: ``"mock"``.

    When the provider falls back to mock (no key, not allow-listed) the model
    is reset so a real model name is never reported for a mock run.
    """
    settings = get_settings()

    provider_name = (override_provider or settings.ai_extract_provider or "mock").lower().strip()
    provider = build_provider(provider_name, settings)

    model = (override_model or settings.ai_extract_model or "").strip()
    if provider.name != provider_name:
        model = ""
    if not model:
        model = DEFAULT_MODELS.get(provider.name, "")

    return ResolvedConfig(
        provider=provider,
        model=model,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout_seconds=settings.ai_timeout_seconds,
    )
