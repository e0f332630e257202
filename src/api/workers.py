import asyncio
import logging
import os

from api import state
from api.metrics import BACKGROUND_FAILURES_TOTAL, CAPTURES_TOTAL, EVENTS_TOTAL
from conversation.router import DetachedJob
from integration.slack_client import SlackClient
from storage.event_dedup import PostgresEventDeduplicator

logger = logging.getLogger(__name__)

# Config
DEDUP_PRUNE_INTERVAL_S = float(os.getenv("DEDUP_PRUNE_INTERVAL_S", "300"))

APOLOGY = "❌ Sorry, something went wrong handling that. Please try again in a moment."

CAPTURE_JOBS = {"capture", "voice_capture"}


async def run_detached(job: DetachedJob, slack: SlackClient) -> None:
    """Run handler work after the response; failures end here, never in the request."""
    try:
        outcome = await job.run()
    except Exception as e:
        logger.exception(f"Background job {job.name} failed: {e}")
        BACKGROUND_FAILURES_TOTAL.labels(job=job.name).inc()
        if job.channel:
            try:
                await slack.post_message(job.channel, APOLOGY, thread_ts=job.thread_ts)
            except Exception as notify_error:
                logger.error(f"Could not post failure notice for {job.name}: {notify_error}")
        return

    EVENTS_TOTAL.labels(job=job.name, outcome=outcome).inc()
    if job.name in CAPTURE_JOBS:
        CAPTURES_TOTAL.labels(outcome=outcome).inc()
    logger.info(f"Background job {job.name} finished: {outcome}")


async def _dedup_prune_worker() -> None:
    """Periodically delete expired rows from the durable dedup table."""
    logger.info("Dedup prune worker started")

    while True:
        await asyncio.sleep(DEDUP_PRUNE_INTERVAL_S)

        if not isinstance(state.deduplicator, PostgresEventDeduplicator):
            continue

        try:
            await state.deduplicator.prune()
        except Exception as e:
            logger.error(f"Error in dedup prune worker: {e}")
