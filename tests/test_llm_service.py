"""Tests for the model backend client.

The provider is replaced by ``httpx.MockTransport`` serving canned
OpenAI-style completion chunks to the SDK client.
"""

from __future__ import annotations

import json

import httpx
import pytest

from rulecraft.core.config import settings
from rulecraft.exceptions import (
    ApiKeyNotSetError,
    ModelBackendError,
    ProviderNotSupportedError,
)
from rulecraft.schemas.chat import ChatMessage, MessagePart
from rulecraft.services.llm_service import LLMService, StreamOptions, to_model_messages

SSE_HEADERS = {"content-type": "text/event-stream"}


def _delta(text: str) -> str:
    chunk = {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "llama-3.3-70b-versatile",
        "choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}],
    }
    return "data: " + json.dumps(chunk) + "\n\n"


def _service(handler) -> LLMService:
    return LLMService(
        api_key="test-key",
        base_url="http://provider.test/v1",
        max_retries=0,
        transport=httpx.MockTransport(handler),
    )


async def _collect(llm: LLMService, options: StreamOptions | None = None) -> list[str]:
    return [
        token
        async for token in llm.stream_generate(
            [{"role": "user", "content": "hi"}], "be brief", options or StreamOptions()
        )
    ]


class TestBuildPayload:
    def test_system_prompt_first_and_streaming(self) -> None:
        llm = LLMService(api_key="k")

        payload = llm.build_payload(
            [{"role": "user", "content": "hi"}], "system text", StreamOptions()
        )

        assert payload["model"] == "llama-3.3-70b-versatile"
        assert payload["stream"] is True
        assert payload["messages"][0] == {"role": "system", "content": "system text"}
        assert payload["messages"][1] == {"role": "user", "content": "hi"}
        assert "temperature" not in payload
        assert "max_tokens" not in payload

    def test_sampling_and_groq_options(self) -> None:
        llm = LLMService(api_key="k")
        options = StreamOptions(
            model="llama-3.1-8b-instant",
            temperature=0.0,
            max_tokens=256,
            parallel_tool_calls=True,
            service_tier="flex",
        )

        payload = llm.build_payload([], None, options)

        assert payload["model"] == "llama-3.1-8b-instant"
        assert payload["temperature"] == 0.0
        assert payload["max_tokens"] == 256
        assert payload["extra_body"] == {"parallel_tool_calls": True, "service_tier": "flex"}
        assert "service_tier" not in payload
        assert payload["messages"] == []

    def test_no_extra_body_without_groq_options(self) -> None:
        llm = LLMService(api_key="k")

        payload = llm.build_payload([], None, StreamOptions())

        assert "extra_body" not in payload

    def test_unknown_provider(self) -> None:
        llm = LLMService(api_key="k")

        with pytest.raises(ProviderNotSupportedError):
            llm.build_payload([], None, StreamOptions(provider="acme"))


class TestToModelMessages:
    def test_flattens_parts_and_skips_empty(self) -> None:
        messages = [
            ChatMessage(
                id="u1",
                role="user",
                parts=[
                    MessagePart(type="text", text="Hello "),
                    MessagePart(type="step-start"),
                    MessagePart(type="text", text="there"),
                ],
            ),
            ChatMessage(id="a1", role="assistant", parts=[]),
        ]

        assert to_model_messages(messages) == [{"role": "user", "content": "Hello there"}]


class TestStreamGenerate:
    @pytest.mark.asyncio
    async def test_yields_deltas_until_done(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            body = (
                _delta("# Rule")
                + ": keep-alive\n\n"
                + _delta("\n- item")
                + "data: [DONE]\n\n"
                + _delta("after done")
            )
            return httpx.Response(200, headers=SSE_HEADERS, content=body.encode("utf-8"))

        tokens = await _collect(_service(handler))

        assert tokens == ["# Rule", "\n- item"]
        assert requests[0].url.path == "/v1/chat/completions"
        assert requests[0].headers["Authorization"] == "Bearer test-key"
        sent = json.loads(requests[0].content)
        assert sent["stream"] is True
        assert sent["messages"][0] == {"role": "system", "content": "be brief"}

    @pytest.mark.asyncio
    async def test_groq_options_reach_request_body(self) -> None:
        sent: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            sent.update(json.loads(request.content))
            return httpx.Response(
                200, headers=SSE_HEADERS, content=(_delta("x") + "data: [DONE]\n\n").encode()
            )

        await _collect(_service(handler), StreamOptions(service_tier="flex", user="u-1"))

        assert sent["service_tier"] == "flex"
        assert sent["user"] == "u-1"
        assert "extra_body" not in sent

    @pytest.mark.asyncio
    async def test_empty_deltas_are_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _delta("") + _delta("a") + "data: [DONE]\n\n"
            return httpx.Response(200, headers=SSE_HEADERS, content=body.encode())

        assert await _collect(_service(handler)) == ["a"]

    @pytest.mark.asyncio
    async def test_non_success_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"message": "rate limited"}})

        with pytest.raises(ModelBackendError, match="HTTP 429 from groq"):
            await _collect(_service(handler))

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ModelBackendError, match="Network error"):
            await _collect(_service(handler))

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ModelBackendError, match="Timeout"):
            await _collect(_service(handler))

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "groq_api_key", None)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        llm = LLMService(base_url="http://provider.test/v1")

        with pytest.raises(ApiKeyNotSetError, match="GROQ_API_KEY"):
            await _collect(llm)
