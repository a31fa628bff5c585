"""FastAPI dependency providers.

Tests override these through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from rulecraft.services.llm_service import LLMService
from rulecraft.services.prompt_service import PromptTemplateService


@lru_cache
def get_llm_service() -> LLMService:
    return LLMService()


@lru_cache
def get_prompt_service() -> PromptTemplateService:
    return PromptTemplateService()
