"""
Avatars — the personas users chat with.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Float, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase


class BaseKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class LipsyncQuality(str, Enum):
    FAST = "fast"
    HD = "hd"


class Avatar(OwnedBase):
    __tablename__ = "avatars"

    name: Mapped[str] = mapped_column(String, nullable=False)

    # Base visual
    base_kind: Mapped[str] = mapped_column(String, nullable=False, default=BaseKind.IMAGE.value)
    base_mime: Mapped[str] = mapped_column(String, nullable=True)
    base_path: Mapped[str] = mapped_column(String, nullable=True)
    base_url: Mapped[str] = mapped_column(Text, nullable=True)
    poster_url: Mapped[str] = mapped_column(Text, nullable=True)
    idle_video_url: Mapped[str] = mapped_column(Text, nullable=True)
    talking_video_url: Mapped[str] = mapped_column(Text, nullable=True)

    # Voice
    voice_provider: Mapped[str] = mapped_column(String, nullable=False, default="minimax")
    voice_preset: Mapped[str] = mapped_column(String, nullable=False)
    voice_provider_id: Mapped[str] = mapped_column(String, nullable=True)
    voice_speed: Mapped[float] = mapped_column(Float, nullable=True)
    voice_pitch: Mapped[float] = mapped_column(Float, nullable=True)

    lipsync_quality: Mapped[str] = mapped_column(
        String, nullable=False, default=LipsyncQuality.FAST.value
    )
    persona: Mapped[str] = mapped_column(Text, nullable=True)
    # Per-avatar clean mode default; None defers to CLEAN_MODE_DEFAULT
    safe_mode: Mapped[bool] = mapped_column(Boolean, nullable=True)

    def resolved_idle_url(self) -> Optional[str]:
        """Looping clip for the waiting state. Image bases have none."""
        if self.idle_video_url:
            return self.idle_video_url
        if self.base_kind == BaseKind.VIDEO.value:
            return self.base_url
        return None

    def resolved_talking_url(self) -> Optional[str]:
        """Driving plate for lip-sync: talking clip, else the base visual."""
        if self.base_kind == BaseKind.VIDEO.value and self.talking_video_url:
            return self.talking_video_url
        return self.base_url or None

    def resolved_poster_url(self) -> Optional[str]:
        if self.base_kind == BaseKind.IMAGE.value:
            return self.base_url
        return self.poster_url
