from fastapi import APIRouter
from ...core.config import settings
from ...services.agents import get_budget_tracker

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Liveness check plus which collaborators are configured"""
    return {
        "status": "ok",
        "app": settings.app_name,
        "env": settings.app_env,
        "extraction": "claude" if settings.anthropic_api_key else "mock",
        "scoring": (
            "remote" if settings.scoring_endpoint_url
            else "claude" if settings.anthropic_api_key
            else "heuristic"
        ),
        "budget": get_budget_tracker().usage(),
    }
