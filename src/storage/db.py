"""
asyncpg pool for the seen-events table.

Only started when event deduplication is shared between instances
(USE_DURABLE_DEDUP=true); everything else lives in Notion.
"""

import logging
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).parent / "schema.sql"

_pool: Optional[asyncpg.Pool] = None


async def init_db_pool(dsn: str, max_size: int = 3, command_timeout: float = 5.0) -> asyncpg.Pool:
    global _pool

    if _pool is not None:
        return _pool

    try:
        _pool = await asyncpg.create_pool(
            dsn, min_size=1, max_size=max_size, command_timeout=command_timeout
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(f"Could not reach the dedup database: {e}")
        raise
    logger.info(f"Dedup database pool ready (max={max_size})")
    return _pool


async def close_db_pool() -> None:
    global _pool

    if _pool is None:
        return
    await _pool.close()
    _pool = None
    logger.info("Dedup database pool closed")


@asynccontextmanager
async def get_connection():
    if _pool is None:
        raise RuntimeError("dedup database pool is not initialized")
    async with _pool.acquire() as connection:
        yield connection


async def execute(query: str, *args) -> str:
    async with get_connection() as conn:
        return await conn.execute(query, *args)


async def fetchval(query: str, *args):
    async with get_connection() as conn:
        return await conn.fetchval(query, *args)


async def init_schema() -> None:
    """Create ``seen_events`` if it is missing; safe to run on every start."""
    async with get_connection() as conn:
        await conn.execute(SCHEMA_PATH.read_text())


async def health_check() -> dict:
    try:
        await fetchval("SELECT 1")
    except (OSError, RuntimeError, asyncpg.PostgresError) as e:
        logger.warning(f"Dedup database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
    return {
        "status": "healthy",
        "pool_size": _pool.get_size() if _pool else 0,
        "pool_free": _pool.get_idle_size() if _pool else 0,
    }
