"""
Avatars API.

GET   /v1/avatars                       — List the caller's avatars
POST  /v1/avatars                       — Create an avatar from uploaded base media (multipart)
PATCH /v1/avatars/{avatar_id}           — Partial update
GET   /v1/avatars/{avatar_id}/messages  — Conversation history, oldest first
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.config import get_settings
from ..core.dependencies import get_db, get_storage_dep, get_user
from ..core.storage import StorageBackend, StoredAsset, extension_for_mime
from ..models.avatar import BaseKind, LipsyncQuality
from ..services.avatars import get_avatar, insert_avatar, list_avatars, update_avatar
from ..services.messages import list_messages
from .schemas import AvatarOut, CamelModel, MessageOut

logger = logging.getLogger(__name__)

avatars_router = APIRouter(prefix="/avatars", tags=["avatars"])

MAX_UPLOAD_SIZE = 80 * 1024 * 1024   # 80 MB per file


class AvatarListOut(CamelModel):
    avatars: list[AvatarOut] = []


class AvatarCreatedOut(CamelModel):
    avatar: AvatarOut


class MessageListOut(CamelModel):
    messages: list[MessageOut] = []


class AvatarPatch(CamelModel):
    name: Optional[str] = None
    voice_preset: Optional[str] = None
    persona: Optional[str] = None
    lipsync_quality: Optional[str] = None
    safe_mode: Optional[bool] = None


def infer_base_kind(mime_type: str) -> Optional[BaseKind]:
    if mime_type.startswith("video/"):
        return BaseKind.VIDEO
    if mime_type.startswith("image/"):
        return BaseKind.IMAGE
    return None


def _quality(value: Optional[str]) -> str:
    return LipsyncQuality.HD.value if value == LipsyncQuality.HD.value else LipsyncQuality.FAST.value


async def _store_upload(
    storage: StorageBackend, user_id: str, upload: UploadFile, suffix: str = ""
) -> tuple[StoredAsset, str]:
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"Empty file: {upload.filename}")
    if len(data) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {MAX_UPLOAD_SIZE // (1024 * 1024)}MB)",
        )
    mime = upload.content_type or "application/octet-stream"
    path = f"{user_id}/{uuid.uuid4()}{suffix}.{extension_for_mime(mime)}"
    asset = await storage.upload(get_settings().base_bucket, path, data, mime)
    return asset, mime


@avatars_router.get("", response_model=AvatarListOut)
async def avatars(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """List avatars, newest first."""
    rows = await list_avatars(db, user.user_id)
    return AvatarListOut(avatars=[AvatarOut.model_validate(a) for a in rows])


@avatars_router.post("", response_model=AvatarCreatedOut)
async def create_avatar(
    file: Optional[UploadFile] = File(None),
    idle_file: Optional[UploadFile] = File(None, alias="idleFile"),
    talking_file: Optional[UploadFile] = File(None, alias="talkingFile"),
    name: str = Form(""),
    voice_preset: str = Form("", alias="voicePreset"),
    persona: Optional[str] = Form(None),
    lipsync_quality: Optional[str] = Form(None, alias="lipsyncQuality"),
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    """
    Create an avatar from an image or video.

    Video bases also get idle and talking clips; each defaults to the base
    file when not uploaded separately.
    """
    if file is None:
        raise HTTPException(status_code=400, detail="Missing file upload")
    name = name.strip()
    voice_preset = voice_preset.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    if not voice_preset:
        raise HTTPException(status_code=400, detail="Voice preset is required")

    base_kind = infer_base_kind(file.content_type or "")
    if base_kind is None:
        raise HTTPException(
            status_code=400, detail=f"Unsupported file mime type: {file.content_type}",
        )

    base_asset, base_mime = await _store_upload(storage, user.user_id, file)
    idle_url = talking_url = None
    if base_kind == BaseKind.VIDEO:
        idle_url = base_asset.public_url
        talking_url = base_asset.public_url
        if idle_file is not None:
            idle_url = (await _store_upload(storage, user.user_id, idle_file, "-idle"))[0].public_url
        if talking_file is not None:
            talking_url = (await _store_upload(storage, user.user_id, talking_file, "-talking"))[0].public_url

    avatar = await insert_avatar(
        db,
        user_id=user.user_id,
        name=name,
        base_kind=base_kind.value,
        base_mime=base_mime,
        base_path=base_asset.path,
        base_url=base_asset.public_url,
        idle_video_url=idle_url,
        talking_video_url=talking_url,
        voice_preset=voice_preset,
        lipsync_quality=_quality(lipsync_quality),
        persona=(persona or "").strip() or None,
    )
    return AvatarCreatedOut(avatar=AvatarOut.model_validate(avatar))


@avatars_router.patch("/{avatar_id}", response_model=AvatarCreatedOut)
async def patch_avatar(
    avatar_id: str,
    request: AvatarPatch,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """Update only the fields present in the body."""
    avatar = await get_avatar(db, user.user_id, avatar_id)
    if avatar is None:
        raise HTTPException(status_code=404, detail="Avatar not found")

    sent = request.model_fields_set
    patch: dict = {}
    if "name" in sent:
        name = (request.name or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Name cannot be empty")
        patch["name"] = name
    if "voice_preset" in sent and (request.voice_preset or "").strip():
        patch["voice_preset"] = request.voice_preset.strip()
    if "persona" in sent:
        patch["persona"] = (request.persona or "").strip() or None
    if "lipsync_quality" in sent:
        patch["lipsync_quality"] = _quality(request.lipsync_quality)
    if "safe_mode" in sent:
        patch["safe_mode"] = request.safe_mode

    avatar = await update_avatar(db, avatar, patch)
    return AvatarCreatedOut(avatar=AvatarOut.model_validate(avatar))


@avatars_router.get("/{avatar_id}/messages", response_model=MessageListOut)
async def avatar_messages(
    avatar_id: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    """Conversation history for one avatar."""
    avatar = await get_avatar(db, user.user_id, avatar_id)
    if avatar is None:
        raise HTTPException(status_code=404, detail="Avatar not found")
    rows = await list_messages(db, user.user_id, avatar_id)
    return MessageListOut(messages=[MessageOut.model_validate(m) for m in rows])
