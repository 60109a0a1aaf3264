"""Tests for AnthropicLLMClient with the SDK mocked out."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from content_search.llm.anthropic import AnthropicLLMClient
from content_search.llm.provider import LLMProvider


def _block(text: str, type: str = "text") -> MagicMock:
    block = MagicMock()
    block.type = type
    block.text = text
    return block


@pytest.fixture
def sdk():
    """AsyncAnthropic stand-in returned by the lazy client factory."""
    client = AsyncMock()
    message = MagicMock()
    message.content = [_block("Plants make sugar from light.")]
    client.messages.create = AsyncMock(return_value=message)
    client.close = AsyncMock()
    with patch("content_search.llm.anthropic.AsyncAnthropic", return_value=client):
        yield client


@pytest.mark.asyncio
async def test_generate_returns_reply_text(sdk):
    llm = AnthropicLLMClient(model="m-1")
    assert await llm.generate("What is photosynthesis?") == "Plants make sugar from light."
    kwargs = sdk.messages.create.call_args.kwargs
    assert kwargs["model"] == "m-1"
    assert kwargs["max_tokens"] == 1024
    assert kwargs["messages"] == [{"role": "user", "content": "What is photosynthesis?"}]
    assert "system" not in kwargs
    assert "temperature" not in kwargs


@pytest.mark.asyncio
async def test_per_call_sampling_and_system(sdk):
    llm = AnthropicLLMClient(max_tokens=512)
    await llm.generate("q", system="Answer from the context.", temperature=0.3, max_tokens=1000)
    kwargs = sdk.messages.create.call_args.kwargs
    assert kwargs["system"] == "Answer from the context."
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 1000


@pytest.mark.asyncio
async def test_only_text_blocks_are_joined(sdk):
    sdk.messages.create.return_value.content = [
        _block("First. "),
        _block("", type="thinking"),
        _block("Second."),
    ]
    assert await AnthropicLLMClient().generate("q") == "First. Second."


@pytest.mark.asyncio
async def test_api_error_yields_none(sdk, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    llm = AnthropicLLMClient()
    await llm.generate("warm up")
    assert await llm.is_available() is True

    sdk.messages.create.side_effect = RuntimeError("overloaded")
    assert await llm.generate("q") is None
    assert await llm.is_available() is False


@pytest.mark.asyncio
async def test_availability_follows_api_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test-key")
    assert await AnthropicLLMClient().is_available() is True
    monkeypatch.delenv("ANTHROPIC_API_KEY")
    assert await AnthropicLLMClient().is_available() is False


def test_model_defaults_to_config(monkeypatch):
    monkeypatch.setenv("CS_ANTHROPIC_MODEL", "from-env")
    assert AnthropicLLMClient().model == "from-env"
    assert AnthropicLLMClient(model="explicit").model == "explicit"


@pytest.mark.asyncio
async def test_close_releases_sdk_client(sdk):
    llm = AnthropicLLMClient()
    await llm.generate("q")
    await llm.close()
    sdk.close.assert_awaited_once()
    assert llm._client is None
    await llm.close()


def test_protocol_conformance():
    assert isinstance(AnthropicLLMClient(), LLMProvider)
