"""
Avatar lookups and writes. The reply pipeline only reads avatars.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.avatar import Avatar

logger = logging.getLogger(__name__)

DEFAULT_VOICE_PROVIDER = "minimax"

# Preset names the app offers → MiniMax voice ids
VOICE_PRESET_TO_PROVIDER_ID: dict[str, str] = {
    "Wise_Woman": "Wise_Woman",
    "Friendly_Person": "Friendly_Person",
    "Inspirational_girl": "Inspirational_girl",
    "Deep_Voice_Man": "Deep_Voice_Man",
    "Calm_Woman": "Calm_Woman",
    "Casual_Guy": "Casual_Guy",
    "Lively_Girl": "Lively_Girl",
    "Patient_Man": "Patient_Man",
    "Young_Knight": "Young_Knight",
    "Determined_Man": "Determined_Man",
    "Lovely_Girl": "Lovely_Girl",
    "Decent_Boy": "Decent_Boy",
    "Imposing_Manner": "Imposing_Manner",
    "Elegant_Man": "Elegant_Man",
    "Abbess": "Abbess",
    "Sweet_Girl_2": "Sweet_Girl_2",
    "Exuberant_Girl": "Exuberant_Girl",
}


def resolve_voice_provider_id(voice_preset: str) -> str:
    return VOICE_PRESET_TO_PROVIDER_ID.get(voice_preset, voice_preset)


async def get_avatar(db: AsyncSession, user_id: str, avatar_id: str) -> Optional[Avatar]:
    """Owner-scoped lookup. Another user's avatar is indistinguishable from a missing one."""
    result = await db.execute(
        select(Avatar).where(Avatar.user_id == user_id, Avatar.id == avatar_id)
    )
    return result.scalar_one_or_none()


async def list_avatars(db: AsyncSession, user_id: str) -> list[Avatar]:
    result = await db.execute(
        select(Avatar)
        .where(Avatar.user_id == user_id)
        .order_by(Avatar.created_at.desc())
    )
    return list(result.scalars().all())


async def insert_avatar(db: AsyncSession, **fields: Any) -> Avatar:
    fields.setdefault("voice_provider", DEFAULT_VOICE_PROVIDER)
    if fields.get("voice_preset") and not fields.get("voice_provider_id"):
        fields["voice_provider_id"] = resolve_voice_provider_id(fields["voice_preset"])
    avatar = Avatar(**fields)
    db.add(avatar)
    await db.flush()
    logger.info("Avatar created: %s (%s, %s)", avatar.id, avatar.name, avatar.base_kind)
    return avatar


async def update_avatar(db: AsyncSession, avatar: Avatar, patch: dict[str, Any]) -> Avatar:
    """Apply a partial update. Keys mapped to None are written as None."""
    if not patch:
        return avatar
    for key, value in patch.items():
        setattr(avatar, key, value)
    if "voice_preset" in patch and patch["voice_preset"]:
        avatar.voice_provider_id = resolve_voice_provider_id(patch["voice_preset"])
    avatar.touch()
    await db.flush()
    logger.info("Avatar %s updated: %s", avatar.id, sorted(patch))
    return avatar
