"""Supported model providers and their model catalogues."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from rulecraft.exceptions import ProviderNotSupportedError


class AIProvider(str, Enum):
    GROQ = "groq"


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration for one provider."""

    default_model: str
    models: list[str] = field(default_factory=list)
    api_key_env: str = ""


PROVIDER_CONFIGS: dict[AIProvider, ProviderConfig] = {
    AIProvider.GROQ: ProviderConfig(
        default_model="llama-3.3-70b-versatile",
        api_key_env="GROQ_API_KEY",
        models=[
            # Llama
            "meta-llama/llama-4-scout-17b-16e-instruct",
            "meta-llama/llama-4-maverick-17b-128e-instruct",
            "llama-3.3-70b-versatile",
            "llama-3.1-70b-versatile",
            "llama-3.1-8b-instant",
            "llama3-70b-8192",
            "llama3-8b-8192",
            # Mixtral
            "mixtral-8x7b-32768",
            # Gemma
            "gemma2-9b-it",
            "gemma-7b-it",
            # Reasoning
            "qwen/qwen3-32b",
            "qwen-qwq-32b",
            "deepseek-r1-distill-llama-70b",
            "deepseek-r1-distill-qwen-32b",
            # Other
            "qwen-2.5-32b",
            "openai/gpt-oss-20b",
            "openai/gpt-oss-120b",
            "moonshotai/kimi-k2-instruct",
        ],
    ),
}

DEFAULT_PROVIDER = AIProvider.GROQ


def resolve_provider(provider: str | AIProvider | None) -> AIProvider:
    """Map a provider name to AIProvider, defaulting to Groq.

    Raises:
        ProviderNotSupportedError: Unknown provider name.
    """
    if provider is None or provider == "":
        return DEFAULT_PROVIDER
    try:
        return AIProvider(provider)
    except ValueError:
        raise ProviderNotSupportedError(str(provider)) from None


def get_available_models(provider: str | AIProvider | None = None) -> list[str]:
    return list(PROVIDER_CONFIGS[resolve_provider(provider)].models)


def get_default_model(provider: str | AIProvider | None = None) -> str:
    return PROVIDER_CONFIGS[resolve_provider(provider)].default_model


def is_model_supported(model: str, provider: str | AIProvider | None = None) -> bool:
    return model in PROVIDER_CONFIGS[resolve_provider(provider)].models
