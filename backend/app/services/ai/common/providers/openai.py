"""OpenAI provider (chat completions, vision through ``image_url`` data URLs)."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from .base import BaseProvider, ProviderImage, ProviderResult

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIProvider(BaseProvider):
    name = "openai"

    def __init__(self, api_key: str, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = api_key
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        image: ProviderImage | None = None,
        model: str = "",
        temperature: float = 0.0,
        max_tokens: int = 1024,
        timeout_seconds: float = 30.0,
    ) -> ProviderResult:
        model = model or "gpt-4o-mini"
        t0 = time.monotonic()

        user_content: Any = prompt
        if image is not None:
            user_content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.data_url}},
            ]

        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_content})

        async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
            resp = await client.post(
                OPENAI_CHAT_URL,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": model,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "messages": messages,
                },
            )
            resp.raise_for_status()
            data = resp.json()

        elapsed = (time.monotonic() - t0) * 1000
        choice = data["choices"][0]
        text = choice["message"].get("content") or ""
        usage = data.get("usage", {})

        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
