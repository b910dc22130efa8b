"""
Wire models. The mobile client speaks camelCase; Python code uses snake_case.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class AvatarOut(CamelModel):
    id: str
    user_id: str
    name: str
    base_kind: str
    base_mime: Optional[str] = None
    base_url: Optional[str] = None
    poster_url: Optional[str] = None
    idle_video_url: Optional[str] = None
    talking_video_url: Optional[str] = None
    voice_provider: Optional[str] = None
    voice_preset: str
    voice_provider_id: Optional[str] = None
    voice_speed: Optional[float] = None
    voice_pitch: Optional[float] = None
    lipsync_quality: str
    persona: Optional[str] = None
    safe_mode: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageOut(CamelModel):
    id: str
    avatar_id: str
    user_id: str
    role: str
    text: str
    status: str
    job_id: Optional[str] = None
    video_url: Optional[str] = None
    video_urls: list[str] = []
    duration_ms: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("video_urls", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []
