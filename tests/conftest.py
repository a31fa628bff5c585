"""Shared pytest fixtures for unit and integration tests.

The model backend is replaced by ``FakeLLMService`` so no test touches the
network. Routes get it through ``app.dependency_overrides``.

Usage in test files:
    def test_something(client, fake_llm):
        fake_llm.tokens = ["# Rule\n", "<<<FOLLOW_UP>>>", "Done!"]
        resp = client.post("/api/ai/generate-rules", json={"message": "hi"})
        ...
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from rulecraft.dependencies import get_llm_service, get_prompt_service
from rulecraft.main import app
from rulecraft.services.llm_service import LLMService, StreamOptions
from rulecraft.services.prompt_service import PromptTemplateService


class FakeLLMService(LLMService):
    """LLMService that replays canned tokens and optionally fails afterwards."""

    def __init__(
        self,
        tokens: list[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        super().__init__(api_key="test-key")
        self.tokens = tokens or []
        self.error = error
        self.calls: list[tuple[list[dict[str, str]], str | None, StreamOptions]] = []

    async def stream_generate(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: StreamOptions,
    ) -> AsyncIterator[str]:
        self.calls.append((messages, system_prompt, options))
        for token in self.tokens:
            yield token
        if self.error is not None:
            raise self.error


# ------------------------------------------------------------------
# Service fixtures
# ------------------------------------------------------------------


@pytest.fixture()
def fake_llm() -> FakeLLMService:
    return FakeLLMService(
        tokens=[
            "# React Components\n",
            "- Use function components\n",
            "<<<FOLL",
            "OW_UP>>>\n",
            "Your rule ",
            "is ready!",
        ]
    )


@pytest.fixture()
def prompt_service() -> PromptTemplateService:
    return PromptTemplateService()


# ------------------------------------------------------------------
# HTTP fixtures
# ------------------------------------------------------------------


@pytest.fixture()
def client(fake_llm: FakeLLMService, prompt_service: PromptTemplateService):
    """TestClient with the model backend replaced by the fake."""
    app.dependency_overrides[get_llm_service] = lambda: fake_llm
    app.dependency_overrides[get_prompt_service] = lambda: prompt_service
    with TestClient(app) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture()
def mock_stream_client() -> Callable[..., httpx.AsyncClient]:
    """Return a helper building an AsyncClient that serves canned bytes.

    ``fragments`` are delivered one read at a time, so tests control exactly
    where the network splits the body.
    """

    def _build(
        fragments: list[bytes],
        status_code: int = 200,
        requests: list[httpx.Request] | None = None,
    ) -> httpx.AsyncClient:
        async def body() -> AsyncIterator[bytes]:
            for fragment in fragments:
                yield fragment

        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            return httpx.Response(status_code, content=body())

        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="http://rulecraft.test",
        )

    return _build


@pytest.fixture()
def make_llm() -> Callable[..., FakeLLMService]:
    """Build a FakeLLMService with custom tokens or a trailing error."""
    return FakeLLMService
