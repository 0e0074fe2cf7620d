"""
Redis pub/sub for document lifecycle events.
Disabled by FF_USE_REDIS=false, in which case publishing does nothing.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_redis_client = None


async def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _redis_client


def encode_event(event_type: str, data: Any = None) -> str:
    return json.dumps(
        {
            "type": event_type,
            "data": data,
            "sentAt": datetime.now(timezone.utc).isoformat(),
        },
        default=str,
    )


async def publish(channel: str, event_type: str, data: Any = None) -> bool:
    """Publish one event. Returns False when disabled or when Redis fails."""
    if not get_flags().use_redis:
        return False

    try:
        client = await _get_redis()
        await client.publish(channel, encode_event(event_type, data))
    except Exception as e:
        # Events are advisory; an upload never fails because of them
        logger.warning("Event %s not published on %s: %s", event_type, channel, e)
        return False
    return True


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
