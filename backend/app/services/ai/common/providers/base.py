"""Abstract base for all AI providers."""

from __future__ import annotations

import abc
import base64
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderImage:
    """An image attached to a prompt."""

    content: bytes
    mime_type: str = "image/jpeg"

    @property
    def b64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"


@dataclass(frozen=True)
class ProviderResult:
    """Immutable result returned by every provider."""

    raw_text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


class BaseProvider(abc.ABC):
    """Contract that every AI provider must implement."""

    name: str = "base"

    @abc.abstractmethod
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
        """Send *prompt* (and optionally *image*) and return a ``ProviderResult``.

        Transport and HTTP errors propagate as ``httpx`` exceptions.
        """
