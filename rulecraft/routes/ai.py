"""AI endpoints with streaming support.

- GET  /api/ai/models: model catalogue for a provider
- POST /api/ai/chat: raw model text carrying JSON event lines
- POST /api/ai/generate-rules: phase events as SSE ``data:`` lines
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import StreamingResponse

from rulecraft.core.models_config import resolve_provider
from rulecraft.dependencies import get_llm_service, get_prompt_service
from rulecraft.exceptions import InvalidChatRequestError, ProviderNotSupportedError
from rulecraft.schemas.chat import ModelsResponse, RuleGenerationRequest
from rulecraft.services import rule_service
from rulecraft.services.llm_service import LLMService
from rulecraft.services.prompt_service import PromptTemplateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def _provider_or_400(provider: str | None) -> str:
    try:
        return resolve_provider(provider).value
    except ProviderNotSupportedError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": {
                    "code": "PROVIDER_NOT_SUPPORTED",
                    "message": str(e),
                }
            },
        ) from e


@router.get("/models", response_model=ModelsResponse)
def get_models(
    provider: str | None = None,
    llm: LLMService = Depends(get_llm_service),
) -> ModelsResponse:
    """Return the default model and the model list for a provider."""
    provider_name = _provider_or_400(provider)
    return ModelsResponse(
        provider=provider_name,
        default_model=llm.get_default_model(provider_name),
        models=llm.get_available_models(provider_name),
    )


@router.post("/chat")
async def chat(
    body: Any = Body(...),
    llm: LLMService = Depends(get_llm_service),
    prompts: PromptTemplateService = Depends(get_prompt_service),
) -> StreamingResponse:
    """Stream the assistant reply for a chat turn.

    The body is a message array, or an object with ``messages`` (or a single
    ``message``) plus optional ``model``, ``provider``, ``temperature`` and
    ``maxTokens``. The reply is plain text in which each line is a JSON
    event (meta, chunk, done, clarify, error).
    """
    try:
        messages, options = rule_service.parse_chat_body(body)
    except InvalidChatRequestError as e:
        logger.warning("Rejected chat request: %s", e)
        raise HTTPException(
            status_code=400,
            detail={
                "error": {
                    "code": "INVALID_REQUEST_BODY",
                    "message": str(e),
                }
            },
        ) from e

    _provider_or_400(options.provider)

    return StreamingResponse(
        rule_service.stream_chat_response(messages, options, llm, prompts),
        media_type="text/plain; charset=utf-8",
        headers=_STREAM_HEADERS,
    )


@router.post("/generate-rules")
async def generate_rules(
    request: RuleGenerationRequest,
    llm: LLMService = Depends(get_llm_service),
    prompts: PromptTemplateService = Depends(get_prompt_service),
) -> StreamingResponse:
    """Stream a phased rule generation using Server-Sent Events.

    Event sequence (each frame is ``data: <json>``):
    - phase-start {phase: "rule-generation", metadata}
    - rule-content {content} (repeated)
    - phase-end {phase: "rule-generation", finalContent}
    - phase-start {phase: "follow-up-message"}
    - follow-up-content {content} (repeated)
    - phase-end {phase: "follow-up-message", finalContent}

    An ``error {errorText}`` frame ends the stream early on failure.
    """
    _provider_or_400(request.provider)

    return StreamingResponse(
        rule_service.stream_rule_generation(request, llm, prompts),
        media_type="text/event-stream",
        headers=_STREAM_HEADERS,
    )


@router.get("/health", tags=["health"])
async def ai_health_check() -> dict:
    """Health check under the /api/ai prefix."""
    return {"status": "ok", "name": "rulecraft-service"}
