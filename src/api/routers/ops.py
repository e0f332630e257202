import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api.dependencies import get_settings
from inbox_ai.config import Settings
from storage import db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "dedup": "durable" if settings.use_durable_dedup else "in-memory",
    }

    if settings.use_durable_dedup:
        db_health = await db.health_check()
        health["database"] = db_health
        if db_health["status"] != "healthy":
            health["status"] = "degraded"

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
