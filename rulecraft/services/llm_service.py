"""Model backend client.

Streams chat completions from the configured provider's OpenAI-compatible
endpoint through the ``openai`` SDK and yields plain text deltas.
Provider-specific options travel in ``extra_body`` for the provider that
understands them.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from rulecraft.core.config import settings
from rulecraft.core.models_config import (
    PROVIDER_CONFIGS,
    AIProvider,
    get_available_models,
    get_default_model,
    is_model_supported,
    resolve_provider,
)
from rulecraft.exceptions import ApiKeyNotSetError, ModelBackendError
from rulecraft.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)


@dataclass
class StreamOptions:
    """Options for one streamed completion.

    Groq-only hints (parallel_tool_calls, service_tier, reasoning_format,
    reasoning_effort, user) are ignored for other providers.
    """

    model: str | None = None
    provider: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    parallel_tool_calls: bool | None = None
    service_tier: str | None = None  # on_demand | flex | auto
    reasoning_format: str | None = None  # parsed | hidden | raw
    reasoning_effort: str | None = None
    user: str | None = None


def to_model_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Flatten UI chat messages into role/content pairs for the provider."""
    model_messages: list[dict[str, str]] = []
    for message in messages:
        text = message.text()
        if not text:
            continue
        model_messages.append({"role": message.role, "content": text})
    return model_messages


class LLMService:
    """Thin streaming client for chat completion providers."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: int | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            api_key: Provider API key (default: settings / environment)
            base_url: Provider API base URL (default: from settings)
            timeout: Request timeout in seconds (default: from settings)
            max_retries: SDK retries on connection errors and 429/5xx
                (default: from settings)
            transport: Optional httpx transport, used by tests
        """
        self._api_key = api_key
        self._base_url = base_url or settings.groq_base_url
        self._timeout = timeout if timeout is not None else settings.llm_timeout_seconds
        self._max_retries = (
            max_retries if max_retries is not None else settings.llm_max_retries
        )
        self._transport = transport

    def _get_api_key(self, provider: AIProvider) -> str:
        config = PROVIDER_CONFIGS[provider]
        api_key = (
            self._api_key
            or settings.groq_api_key
            or os.environ.get(config.api_key_env)
        )
        if not api_key:
            raise ApiKeyNotSetError(
                f"API key not found for provider {provider.value}. "
                f"Please set {config.api_key_env} environment variable."
            )
        return api_key

    def _client(self, api_key: str) -> AsyncOpenAI:
        http_client = None
        if self._transport is not None:
            http_client = httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            )
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=self._max_retries,
            http_client=http_client,
        )

    def build_payload(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: StreamOptions,
    ) -> dict[str, Any]:
        """Build the keyword arguments for ``chat.completions.create``."""
        provider = resolve_provider(options.provider)
        model = options.model or get_default_model(provider)
        if not is_model_supported(model, provider):
            logger.warning(
                "Model %s is not in the %s catalogue; sending anyway",
                model,
                provider.value,
            )

        all_messages = list(messages)
        if system_prompt:
            all_messages.insert(0, {"role": "system", "content": system_prompt})

        payload: dict[str, Any] = {
            "model": model,
            "messages": all_messages,
            "stream": True,
        }
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens:
            payload["max_tokens"] = options.max_tokens

        if provider == AIProvider.GROQ:
            groq_options = {
                "parallel_tool_calls": options.parallel_tool_calls,
                "service_tier": options.service_tier,
                "reasoning_format": options.reasoning_format,
                "reasoning_effort": options.reasoning_effort,
                "user": options.user,
            }
            extra_body = {k: v for k, v in groq_options.items() if v is not None}
            if extra_body:
                payload["extra_body"] = extra_body

        return payload

    async def stream_generate(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: StreamOptions,
    ) -> AsyncIterator[str]:
        """Yield text deltas of a streamed completion.

        Raises:
            ProviderNotSupportedError: Unknown provider.
            ApiKeyNotSetError: No API key configured.
            ModelBackendError: Network failure or non-2xx provider response.
        """
        provider = resolve_provider(options.provider)
        api_key = self._get_api_key(provider)
        payload = self.build_payload(messages, system_prompt, options)

        logger.info(
            "Streaming completion from %s (model=%s, messages=%d)",
            provider.value,
            payload["model"],
            len(payload["messages"]),
        )

        try:
            async with self._client(api_key) as client:
                stream = await client.chat.completions.create(**payload)
                async with stream:
                    async for chunk in stream:
                        for choice in chunk.choices:
                            if choice.delta is not None and choice.delta.content:
                                yield choice.delta.content

        except APITimeoutError as e:
            raise ModelBackendError(
                f"Timeout streaming from {provider.value} after {self._timeout}s"
            ) from e
        except APIConnectionError as e:
            raise ModelBackendError(
                f"Network error streaming from {provider.value}: {e}"
            ) from e
        except APIStatusError as e:
            raise ModelBackendError(
                f"HTTP {e.status_code} from {provider.value}: {e.message[:200]}"
            ) from e

    def get_available_models(self, provider: str | None = None) -> list[str]:
        return get_available_models(provider)

    def get_default_model(self, provider: str | None = None) -> str:
        return get_default_model(provider)

    def is_model_supported(self, model: str, provider: str | None = None) -> bool:
        return is_model_supported(model, provider)
