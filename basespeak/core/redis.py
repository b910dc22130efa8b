"""
Message events over Redis pub/sub. FF_USE_REDIS=false turns every publish into a no-op.

Subscribers listen on user:<user_id> and receive
{"type": "message.created" | "message.updated", "data": {...}}.
"""

import json
import logging
from typing import Any

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_client = None


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


async def _connection():
    global _client
    if _client is None:
        import redis.asyncio as aioredis

        _client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _client


async def publish(channel: str, event_type: str, data: Any = None) -> bool:
    """Send one event. Returns False when disabled or when Redis refused it."""
    if not get_flags().use_redis:
        return False

    body = json.dumps({"type": event_type, "data": data}, default=str)
    try:
        await (await _connection()).publish(channel, body)
    except Exception as e:
        # Publishing never raises
        logger.warning("Event %s not published on %s: %s", event_type, channel, e)
        return False
    return True


async def notify_user(user_id: str, event_type: str, data: Any = None) -> bool:
    return await publish(user_channel(user_id), event_type, data)


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")
