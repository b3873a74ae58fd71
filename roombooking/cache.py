import json
from datetime import datetime

from loguru import logger
from redis.asyncio import Redis

from roombooking.settings import HISTORY_CACHE_TTL, REDIS_URL

_redis: Redis | None = None


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _history_key(booking_id: int, version: datetime) -> str:
    """
    Keyed by the booking's updated_at: every status change bumps it in the
    same write, so history read before that write is filed under a key no
    later reader asks for.
    """
    return f"booking-history:{booking_id}:{version.isoformat()}"


async def get_history_cache(booking_id: int, version: datetime) -> list | None:
    try:
        data = await get_redis().get(_history_key(booking_id, version))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed — skipping history cache", exc_info=True)
        return None


async def set_history_cache(booking_id: int, version: datetime, entries: list) -> None:
    try:
        await get_redis().setex(
            _history_key(booking_id, version), HISTORY_CACHE_TTL, json.dumps(entries)
        )
    except Exception:
        logger.warning("Redis set failed — skipping history cache", exc_info=True)


async def invalidate_history_cache(booking_id: int, version: datetime) -> None:
    """Drop the entry for a version that has just been superseded."""
    try:
        await get_redis().delete(_history_key(booking_id, version))
    except Exception:
        logger.warning("Redis invalidate failed for history cache", exc_info=True)
