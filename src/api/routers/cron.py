import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_digest_service, require_cron_secret
from api.metrics import REQUESTS_TOTAL, REQUEST_LATENCY_SECONDS
from digest.digest_generator import DigestKind, DigestService

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])
logger = logging.getLogger(__name__)


async def _send_digest(kind: DigestKind, endpoint: str, digest: DigestService):
    start = time.time()
    try:
        await digest.send(kind)
    except Exception as e:
        logger.exception(f"{kind} digest failed: {e}")
        REQUESTS_TOTAL.labels(endpoint=endpoint, status="error").inc()
        return JSONResponse({"error": "Failed to send digest"}, status_code=500)

    REQUESTS_TOTAL.labels(endpoint=endpoint, status="sent").inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)
    return {"ok": True}


@router.get("/morning-digest")
async def morning_digest(digest: DigestService = Depends(get_digest_service)):
    return await _send_digest("morning", "/cron/morning-digest", digest)


@router.get("/evening-digest")
async def evening_digest(digest: DigestService = Depends(get_digest_service)):
    return await _send_digest("evening", "/cron/evening-digest", digest)


@router.get("/weekly-review")
async def weekly_review(digest: DigestService = Depends(get_digest_service)):
    return await _send_digest("weekly", "/cron/weekly-review", digest)
