"""FastAPI application entry point for rulecraft-service.

Configures middleware, exception handlers, lifecycle hooks, and routes.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rulecraft import __version__
from rulecraft.core.config import settings
from rulecraft.core.models_config import PROVIDER_CONFIGS
from rulecraft.routes import health
from rulecraft.routes.ai import router as ai_router

# ---------------------------------------------------------------------------
# Logging Configuration
# ---------------------------------------------------------------------------

# Configure root logger with level from settings
logging.basicConfig(
    level=settings.get_log_level_int(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _verify_provider_keys() -> list[str]:
    """Return the environment variables of providers that have no API key."""
    missing = []
    for config in PROVIDER_CONFIGS.values():
        if not (settings.groq_api_key or os.environ.get(config.api_key_env)):
            missing.append(config.api_key_env)
    return missing


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle."""
    # --- Startup ---
    logger.info(
        "Starting rulecraft-service (env=%s, port=%d)",
        settings.service_env,
        settings.port,
    )

    missing_keys = _verify_provider_keys()
    if missing_keys:
        logger.warning(
            "No API key configured (%s). Generation requests will fail "
            "until one is set.",
            ", ".join(missing_keys),
        )

    logger.info(
        "Streaming protocol: follow-up marker=%r, trailing line policy=%s",
        settings.follow_up_marker,
        settings.stream_trailing_line_policy,
    )

    yield

    # --- Shutdown ---
    logger.info("Shutting down rulecraft-service")


# ---------------------------------------------------------------------------
# App instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title="rulecraft API",
    version=__version__,
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log every request with method, path, status, and duration."""
    start = time.monotonic()
    response = await call_next(request)
    duration_ms = (time.monotonic() - start) * 1000
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler that returns a structured JSON error."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            }
        },
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

# Health check at /health (no prefix)
app.include_router(health.router)

# AI routes (prefixed with /api/ai)
app.include_router(ai_router)
