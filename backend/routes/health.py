"""Health and readiness check routes."""

import asyncio
import logging

from fastapi import APIRouter, Request

from config import settings
from services import llm_client

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "crypto-dashboard-api", "commit": settings.git_sha}


@router.get("/health")
async def health(request: Request) -> dict:
    """Deep health check: cache stats plus LLM connectivity."""
    result = {
        "status": "ok",
        "service": "crypto-dashboard-api",
        "commit": settings.git_sha,
        "cache": request.app.state.cache.stats(),
        "ai": "not_configured",
    }

    if not llm_client.is_configured():
        return result

    try:
        response = await asyncio.to_thread(
            llm_client.complete,
            messages=[{"role": "user", "content": "Say 'hello' and nothing else."}],
            max_tokens=10,
        )
        result["ai"] = "connected"
        result["ai_response"] = response.strip()
    except Exception as e:
        logger.exception("LLM health check failed")
        result["ai"] = "error"
        result["ai_error"] = str(e)

    return result
