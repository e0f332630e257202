import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import state
from api.dependencies import get_settings
from api.routers import backfill, cron, ops, slack
from api.workers import _dedup_prune_worker
from conversation.dedup import InMemoryEventDeduplicator
from inbox_ai.errors import Unauthorized, ValidationError
from storage import db
from storage.event_dedup import PostgresEventDeduplicator

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Inbox AI")

app.include_router(slack.router)
app.include_router(cron.router)
app.include_router(backfill.router)
app.include_router(ops.router)


@app.exception_handler(Unauthorized)
async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    logger.warning(f"Rejected {request.url.path}: {exc}")
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()

    if settings.use_durable_dedup:
        await db.init_db_pool(settings.database_url)
        await db.init_schema()
        state.deduplicator = PostgresEventDeduplicator(ttl_seconds=settings.dedup_ttl_seconds)
        asyncio.create_task(_dedup_prune_worker())
        logger.info("Using durable event dedup")
    else:
        state.deduplicator = InMemoryEventDeduplicator(ttl_seconds=settings.dedup_ttl_seconds)
        logger.info("Using in-memory event dedup")


@app.on_event("shutdown")
async def shutdown() -> None:
    if state.slack_client is not None:
        await state.slack_client.aclose()
    if state.notion_client is not None:
        await state.notion_client.aclose()
    if state.settings is not None and state.settings.use_durable_dedup:
        await db.close_db_pool()
    logger.info("Inbox AI stopped")
