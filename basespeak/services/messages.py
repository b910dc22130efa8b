"""
Message store. Every write goes through here so video_url stays in sync
with video_urls and realtime listeners hear about it.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import new_uuid
from ..models.message import Message
from . import realtime

logger = logging.getLogger(__name__)

_UNSET = object()


async def insert_message(
    db: AsyncSession,
    user_id: str,
    avatar_id: str,
    role: str,
    text: str,
    status: str,
    message_id: Optional[str] = None,
    job_id: Optional[str] = None,
    video_urls: Optional[list[str]] = None,
    duration_ms: Optional[int] = None,
) -> Message:
    """Insert a message row and flush it."""
    message = Message(
        id=message_id or new_uuid(),
        user_id=user_id,
        avatar_id=avatar_id,
        role=role,
        text=text,
        status=status,
        job_id=job_id,
        duration_ms=duration_ms,
    )
    message.set_videos(video_urls or [])
    db.add(message)
    await db.flush()
    logger.info(
        "Message %s saved: role=%s status=%s videos=%d",
        message.id, role, status, len(message.video_urls or []),
    )
    realtime.message_created(db, message)
    return message


async def update_message(
    db: AsyncSession,
    message: Message,
    status: Optional[str] = None,
    video_urls: Optional[list[str]] = None,
    video_path: Optional[str] = None,
    job_id=_UNSET,
) -> Message:
    """Patch status / videos / job handle. Always bumps updated_at."""
    if status is not None:
        message.status = status
    if video_urls is not None:
        message.set_videos(video_urls, path=video_path)
    if job_id is not _UNSET:
        message.job_id = job_id
    message.touch()
    await db.flush()
    logger.info("Message %s updated: status=%s", message.id, message.status)
    realtime.message_updated(db, message)
    return message


async def get_message(db: AsyncSession, message_id: str) -> Optional[Message]:
    return await db.get(Message, message_id)


async def find_message_by_job_id(db: AsyncSession, job_id: str) -> Optional[Message]:
    result = await db.execute(select(Message).where(Message.job_id == job_id).limit(1))
    return result.scalar_one_or_none()


async def list_messages(db: AsyncSession, user_id: str, avatar_id: str) -> list[Message]:
    """Conversation history for one avatar, oldest first."""
    result = await db.execute(
        select(Message)
        .where(Message.user_id == user_id, Message.avatar_id == avatar_id)
        .order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())
