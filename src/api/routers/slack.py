import json
import logging
import time
from typing import Any, Dict
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import (
    get_backfill_handler,
    get_digest_service,
    get_event_router,
    get_slack_client,
)
from api.metrics import REQUESTS_TOTAL, REQUEST_LATENCY_SECONDS
from api.workers import run_detached
from conversation.backfill_handler import BackfillHandler
from conversation.router import DetachedJob, EventRouter
from digest.digest_generator import DigestService
from inbox_ai.errors import Unauthorized
from integration.slack_client import SlackClient

router = APIRouter(prefix="/slack", tags=["slack"])
logger = logging.getLogger(__name__)


def _parse_json(body: bytes) -> Dict[str, Any]:
    try:
        value = json.loads(body)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    return value


def _verify_request_or_401(slack: SlackClient, request: Request, body: bytes) -> None:
    if not slack.verify_signature(request.headers, body):
        REQUESTS_TOTAL.labels(endpoint=request.url.path, status="unauthorized").inc()
        raise Unauthorized("invalid Slack signature")


@router.post("/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    slack: SlackClient = Depends(get_slack_client),
    event_router: EventRouter = Depends(get_event_router),
):
    start = time.time()
    body = await request.body()
    payload = _parse_json(body)

    # Slack sends the challenge while the endpoint is being configured
    if payload.get("type") == "url_verification":
        return JSONResponse({"challenge": payload.get("challenge", "")})

    _verify_request_or_401(slack, request, body)

    job = await event_router.dispatch(payload)
    if job is None:
        REQUESTS_TOTAL.labels(endpoint="/slack/events", status="dropped").inc()
    else:
        logger.info(f"Accepted event for {job.name}")
        background_tasks.add_task(run_detached, job, slack)
        REQUESTS_TOTAL.labels(endpoint="/slack/events", status="accepted").inc()

    REQUEST_LATENCY_SECONDS.labels(endpoint="/slack/events").observe(time.time() - start)
    return {"ok": True}


@router.post("/commands")
async def slack_commands(
    request: Request,
    background_tasks: BackgroundTasks,
    slack: SlackClient = Depends(get_slack_client),
    digest: DigestService = Depends(get_digest_service),
    backfill: BackfillHandler = Depends(get_backfill_handler),
):
    body = await request.body()
    _verify_request_or_401(slack, request, body)

    params = parse_qs(body.decode("utf-8"))
    command = (params.get("command") or [""])[0]
    channel_id = (params.get("channel_id") or [""])[0]

    if command == "/review" and channel_id:
        job = DetachedJob(
            name="review",
            channel=channel_id,
            thread_ts=None,
            run=lambda: digest.post_review(channel_id),
        )
        background_tasks.add_task(run_detached, job, slack)
        REQUESTS_TOTAL.labels(endpoint="/slack/commands", status="review").inc()
        return {"response_type": "ephemeral", "text": "📋 Generating your review..."}

    if command == "/backfill" and channel_id:
        job = DetachedJob(
            name="backfill_preview",
            channel=channel_id,
            thread_ts=None,
            run=lambda: backfill.start_preview(channel_id),
        )
        background_tasks.add_task(run_detached, job, slack)
        REQUESTS_TOTAL.labels(endpoint="/slack/commands", status="backfill").inc()
        return {"response_type": "ephemeral", "text": "🏷️ Building a tag preview..."}

    return {"text": "Unknown command"}
