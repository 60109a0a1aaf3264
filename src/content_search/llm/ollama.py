"""Ollama chat client used for answers, follow-ups and query expansion."""

import logging
import time
from typing import Any

import httpx

from content_search.config import get_llm_model, get_llm_timeout, get_ollama_url

logger = logging.getLogger(__name__)


def _build_messages(prompt: str, system: str | None) -> list[dict[str, str]]:
    messages = []
    if system is not None:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


class OllamaLLMClient:
    """Generates text via Ollama's /api/chat endpoint.

    Availability means the server answers /api/tags. A model that is not
    pulled yet only shows up as a failed chat call, which logs and
    returns None like any other backend error.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize with an optional HTTP client; unset values come from config."""
        self._http = http_client
        self._base_url = (base_url or get_ollama_url()).rstrip("/")
        self._model = model or get_llm_model()
        self._timeout = timeout or get_llm_timeout()
        self._reachable = False

    @property
    def model(self) -> str:
        """Ollama model tag used for generation."""
        return self._model

    async def is_available(self) -> bool:
        """Check /api/tags until it succeeds once; failures are retried next call."""
        if self._reachable:
            return True
        try:
            resp = await self._client().get(f"{self._base_url}/api/tags", timeout=self._timeout)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Ollama at %s not reachable: %s", self._base_url, exc)
            return False
        self._reachable = True
        return True

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str | None:
        """Run one non-streaming chat turn. Returns None if the backend fails."""
        if not await self.is_available():
            return None
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": _build_messages(prompt, system),
            "stream": False,
        }
        if options:
            payload["options"] = options

        started = time.monotonic()
        try:
            resp = await self._client().post(
                f"{self._base_url}/api/chat", json=payload, timeout=self._timeout
            )
            resp.raise_for_status()
            text: str = resp.json()["message"]["content"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError):
            logger.warning("Ollama chat failed (model=%s)", self._model, exc_info=True)
            self._reachable = False
            return None
        logger.debug(
            "Ollama chat done (model=%s, prompt_chars=%d, reply_chars=%d, %.0fms)",
            self._model,
            len(prompt),
            len(text),
            (time.monotonic() - started) * 1000,
        )
        return text

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
