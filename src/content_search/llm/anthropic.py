"""Anthropic Messages API client for answer generation."""

from __future__ import annotations

import logging
import os
from typing import Any

from anthropic import AsyncAnthropic

from content_search.config import get_anthropic_model, get_anthropic_timeout

logger = logging.getLogger(__name__)


class AnthropicLLMClient:
    """Generates text with Claude models; failures degrade to None."""

    def __init__(self, *, model: str | None = None, max_tokens: int = 1024) -> None:
        """Initialize; the SDK client is created on first use."""
        self._client: Any = None
        self._model = model or get_anthropic_model()
        self._default_max_tokens = max_tokens
        self._confirmed = False

    @property
    def model(self) -> str:
        """Anthropic model used for generation."""
        return self._model

    async def is_available(self) -> bool:
        """True once a call succeeded, otherwise whenever an API key is configured."""
        if self._confirmed:
            return True
        if os.environ.get("ANTHROPIC_API_KEY"):
            return True
        logger.warning("ANTHROPIC_API_KEY not set, Anthropic generation disabled")
        return False

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        """Send one user message and join the text blocks of the reply."""
        request: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens or self._default_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system is not None:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature
        try:
            message = await self._sdk().messages.create(
                **request, timeout=get_anthropic_timeout()
            )
            text = "".join(
                block.text for block in message.content if getattr(block, "type", "text") == "text"
            )
        except Exception:
            logger.warning("Anthropic generation failed (model=%s)", self._model, exc_info=True)
            self._confirmed = False
            return None
        self._confirmed = True
        return text

    def _sdk(self) -> Any:
        if self._client is None:
            self._client = AsyncAnthropic()
        return self._client

    async def close(self) -> None:
        """Close the SDK client if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None
