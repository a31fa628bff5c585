from fastapi import APIRouter

from rulecraft import __version__
from rulecraft.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "name": "rulecraft-service",
        "version": __version__,
        "environment": settings.service_env,
    }
