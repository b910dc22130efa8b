"""
Chat messages. One row per user turn and one per assistant turn.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    """Rendering status. `rendering` only occurs in single-job mode."""
    PENDING = "pending"
    AUDIO_READY = "audio_ready"
    RENDERING = "rendering"
    DONE = "done"
    ERROR = "error"


class Message(OwnedBase):
    __tablename__ = "messages"

    avatar_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=MessageStatus.PENDING.value
    )
    job_id: Mapped[str] = mapped_column(String, nullable=True, index=True)
    video_path: Mapped[str] = mapped_column(String, nullable=True)
    # video_url mirrors video_urls[0]; always written through set_videos()
    video_url: Mapped[str] = mapped_column(Text, nullable=True)
    video_urls: Mapped[list] = mapped_column(JSON, nullable=True, default=list)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=True)

    def set_videos(self, urls: list[str], path: Optional[str] = None) -> None:
        """Replace the ordered clip list and the denormalized first URL."""
        ordered = [u for u in urls if u]
        self.video_urls = ordered
        self.video_url = ordered[0] if ordered else None
        if path is not None:
            self.video_path = path
