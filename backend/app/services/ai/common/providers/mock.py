"""Mock provider — deterministic responses for tests and fallback."""

from __future__ import annotations

import json
import time

from .base import BaseProvider, ProviderImage, ProviderResult

MOCK_REPLY = {
    "supplier": "",
    "tax_id": "",
    "amount": "",
    "document_date": "",
    "description": "",
    "raw_text": "",
}


class MockProvider(BaseProvider):
    name = "mock"

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
        t0 = time.monotonic()
        text = json.dumps(MOCK_REPLY)
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round(elapsed, 2),
        )
