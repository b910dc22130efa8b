"""
Reply API.

POST /v1/reply — Generate the avatar's reply: text, audio and lip-synced clips
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_orchestrator, get_user
from ..orchestrator.orchestrator import AvatarNotFoundError, ReplyOrchestrator, ReplySettings
from .schemas import CamelModel

logger = logging.getLogger(__name__)

reply_router = APIRouter(tags=["reply"])


class ReplySettingsIn(CamelModel):
    clean_mode: Optional[bool] = None
    skip_short_replies: Optional[bool] = None


class ReplyRequest(CamelModel):
    # Optional here so a missing field is a 400, not a schema 422
    avatar_id: Optional[str] = None
    user_text: Optional[str] = None
    lipsync_quality: Optional[str] = None
    settings: Optional[ReplySettingsIn] = None


class ReplyResponse(CamelModel):
    reply_text: str
    audio_b64: str
    mime: str
    message_id: str
    video_urls: list[str] = []
    job_id: Optional[str] = None
    status: str = ""
    duration_ms: Optional[int] = None


@reply_router.post("/reply", response_model=ReplyResponse)
async def reply(
    request: ReplyRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: ReplyOrchestrator = Depends(get_orchestrator),
):
    """Run the reply pipeline for one user turn."""
    settings = request.settings or ReplySettingsIn()
    try:
        result = await orchestrator.handle_reply(
            db,
            user_id=user.user_id,
            avatar_id=request.avatar_id,
            user_text=request.user_text,
            lipsync_quality=request.lipsync_quality,
            settings=ReplySettings(
                clean_mode=settings.clean_mode,
                skip_short_replies=bool(settings.skip_short_replies),
            ),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AvatarNotFoundError:
        raise HTTPException(status_code=404, detail="Avatar not found")
    except Exception:
        logger.exception("Reply handler failed (user=%s avatar=%s)", user.user_id, request.avatar_id)
        raise HTTPException(status_code=500, detail="Failed to process reply")

    return ReplyResponse(
        reply_text=result.reply_text,
        audio_b64=result.audio.audio_b64,
        mime=result.audio.mime_type,
        message_id=result.message_id,
        video_urls=result.video_urls,
        job_id=result.job_id,
        status=result.status.value,
        duration_ms=result.audio.duration_ms,
    )
