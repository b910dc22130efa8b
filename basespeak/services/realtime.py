"""
Realtime notifications. Thin wrapper around core.redis.
Typed event helpers for message lifecycle changes.

Events are queued on the session and only go out once the rows they
describe are committed: call publish_pending after commit, discard_pending
after rollback.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from ..core import redis as _redis
from ..models.message import Message

_PENDING_KEY = "basespeak.pending_events"


def _message_event(message: Message) -> dict:
    return {
        "message_id": message.id,
        "avatar_id": message.avatar_id,
        "role": message.role,
        "status": message.status,
        "video_urls": list(message.video_urls or []),
        "job_id": message.job_id,
    }


def _queue(db: AsyncSession, user_id: str, event_type: str, message: Message):
    db.info.setdefault(_PENDING_KEY, []).append((user_id, event_type, _message_event(message)))


def message_created(db: AsyncSession, message: Message):
    _queue(db, message.user_id, "message.created", message)


def message_updated(db: AsyncSession, message: Message):
    _queue(db, message.user_id, "message.updated", message)


def pending_events(db: AsyncSession) -> list:
    return list(db.info.get(_PENDING_KEY, []))


def discard_pending(db: AsyncSession) -> None:
    db.info.pop(_PENDING_KEY, None)


async def publish_pending(db: AsyncSession) -> int:
    """Send queued events in order. Returns how many were published."""
    events = db.info.pop(_PENDING_KEY, [])
    sent = 0
    for user_id, event_type, data in events:
        if await _redis.notify_user(user_id, event_type, data):
            sent += 1
    return sent
