import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_backfill_handler, get_settings, require_backfill_secret
from api.metrics import REQUESTS_TOTAL
from conversation.backfill_handler import BackfillHandler
from inbox_ai.config import Settings

router = APIRouter(prefix="/backfill-tags", tags=["backfill"], dependencies=[Depends(require_backfill_secret)])
logger = logging.getLogger(__name__)


@router.post("")
async def backfill_tags(backfill: BackfillHandler = Depends(get_backfill_handler)):
    """Tag every untagged active item right away."""
    try:
        result = await backfill.backfill_active_items()
    except Exception as e:
        logger.exception(f"Tag backfill failed: {e}")
        REQUESTS_TOTAL.labels(endpoint="/backfill-tags", status="error").inc()
        return JSONResponse({"error": "Backfill failed"}, status_code=500)

    REQUESTS_TOTAL.labels(endpoint="/backfill-tags", status="applied").inc()
    return result.model_dump()


@router.post("/preview")
async def backfill_preview(
    backfill: BackfillHandler = Depends(get_backfill_handler),
    settings: Settings = Depends(get_settings),
):
    """Post a tag preview to the inbox channel and wait for a reply there."""
    try:
        outcome = await backfill.start_preview(settings.slack_inbox_channel_id)
    except Exception as e:
        logger.exception(f"Tag backfill preview failed: {e}")
        REQUESTS_TOTAL.labels(endpoint="/backfill-tags/preview", status="error").inc()
        return JSONResponse({"error": "Backfill preview failed"}, status_code=500)

    REQUESTS_TOTAL.labels(endpoint="/backfill-tags/preview", status=outcome).inc()
    return {"ok": True, "outcome": outcome}
