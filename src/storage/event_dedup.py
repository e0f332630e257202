"""
PostgreSQL-backed event deduplication.

Shares the seen-set between instances: an id is a duplicate while its row is
younger than the TTL. Expired rows are pruned opportunistically.
"""

import logging

import asyncpg

from conversation.dedup import DEFAULT_TTL_SECONDS, EventDeduplicator
from storage import db

logger = logging.getLogger(__name__)


class PostgresEventDeduplicator(EventDeduplicator):
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds

    async def check_and_mark(self, event_id: str) -> bool:
        # A stale row is refreshed and counts as new; a fresh row is a duplicate.
        query = """
            INSERT INTO seen_events (event_id, seen_at)
            VALUES ($1, NOW())
            ON CONFLICT (event_id) DO UPDATE
                SET seen_at = NOW()
                WHERE seen_events.seen_at < NOW() - make_interval(secs => $2)
            RETURNING event_id
        """
        try:
            inserted = await db.fetchval(query, event_id, float(self.ttl_seconds))
        except (OSError, RuntimeError, asyncpg.PostgresError) as e:
            logger.warning(f"Dedup lookup failed for {event_id}, treating it as new: {e}")
            return False
        return inserted is None

    async def prune(self) -> int:
        """Drop rows older than the TTL; returns how many were removed."""
        result = await db.execute(
            "DELETE FROM seen_events WHERE seen_at < NOW() - make_interval(secs => $1)",
            float(self.ttl_seconds),
        )
        try:
            count = int(result.split()[-1])
        except (ValueError, IndexError):
            count = 0

        if count > 0:
            logger.info(f"Pruned {count} expired event ids")
        return count
