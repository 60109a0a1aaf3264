"""Tests for OllamaLLMClient against a mocked /api/chat."""

import json

import httpx
import pytest

from content_search.llm.ollama import OllamaLLMClient
from content_search.llm.provider import LLMProvider


class OllamaStub:
    """MockTransport handler that records chat payloads and reachability checks."""

    def __init__(self, reply: str = "test output", chat_status: int = 200):
        self.reply = reply
        self.chat_status = chat_status
        self.tags_status = 200
        self.tag_checks = 0
        self.payloads: list[dict] = []
        self.urls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        if request.url.path == "/api/tags":
            self.tag_checks += 1
            return httpx.Response(self.tags_status, json={"models": []})
        if request.url.path == "/api/chat":
            self.payloads.append(json.loads(request.content))
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json={"error": "model not found"})
            return httpx.Response(
                200, json={"message": {"role": "assistant", "content": self.reply}, "done": True}
            )
        return httpx.Response(404)


def _client(stub: OllamaStub, **kwargs) -> OllamaLLMClient:
    return OllamaLLMClient(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)), **kwargs
    )


@pytest.mark.asyncio
async def test_chat_reply_is_returned():
    stub = OllamaStub()
    client = _client(stub, model="llama3.2")
    try:
        assert await client.generate("hello") == "test output"
        payload = stub.payloads[0]
        assert payload["model"] == "llama3.2"
        assert payload["stream"] is False
        assert payload["messages"] == [{"role": "user", "content": "hello"}]
        assert "options" not in payload
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_system_prompt_and_sampling_options():
    stub = OllamaStub()
    client = _client(stub)
    try:
        await client.generate("hello", system="be helpful", temperature=0.3, max_tokens=1000)
        payload = stub.payloads[0]
        assert payload["messages"] == [
            {"role": "system", "content": "be helpful"},
            {"role": "user", "content": "hello"},
        ]
        assert payload["options"] == {"temperature": 0.3, "num_predict": 1000}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_unreachable_server_yields_none():
    stub = OllamaStub()
    stub.tags_status = 503
    client = _client(stub)
    try:
        assert await client.is_available() is False
        assert await client.generate("hello") is None
        assert stub.payloads == []
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_chat_error_yields_none_and_rechecks_server():
    stub = OllamaStub(chat_status=404)
    client = _client(stub)
    try:
        assert await client.generate("hello") is None
        assert stub.tag_checks == 1
        stub.chat_status = 200
        assert await client.generate("hello") == "test output"
        assert stub.tag_checks == 2
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_malformed_reply_yields_none():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": []})
        return httpx.Response(200, json={"done": True})

    client = OllamaLLMClient(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        assert await client.generate("hello") is None
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_successful_reachability_check_is_remembered():
    stub = OllamaStub()
    client = _client(stub)
    try:
        assert await client.is_available() is True
        assert await client.is_available() is True
        assert stub.tag_checks == 1
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_base_url_override_strips_trailing_slash():
    stub = OllamaStub()
    client = _client(stub, base_url="http://gpu-box:11434/")
    try:
        await client.generate("hello")
        assert stub.urls == ["http://gpu-box:11434/api/tags", "http://gpu-box:11434/api/chat"]
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_close_releases_http_client():
    client = _client(OllamaStub())
    await client.close()
    assert client._http is None
    await client.close()


def test_model_defaults_to_config(monkeypatch):
    monkeypatch.setenv("CS_LLM_MODEL", "qwen2.5:7b")
    assert OllamaLLMClient().model == "qwen2.5:7b"


def test_protocol_conformance():
    assert isinstance(OllamaLLMClient(), LLMProvider)
