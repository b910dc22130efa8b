"""
Reply orchestration.

normalize → generate → synthesize fallback audio → (maybe) segment →
per segment: synthesize → upload → submit lip-sync → poll → collect →
persist → respond.

Vendor trouble degrades the reply (template text, placeholder tone, fewer
clips) but never fails it. Only an unexpected exception escapes, after
the user message has already been committed.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.guardrails import check_input, truncate
from ..core.storage import StorageBackend, extension_for_mime
from ..models.avatar import Avatar, LipsyncQuality
from ..models.base import new_uuid
from ..models.message import MessageRole, MessageStatus
from ..services import realtime
from ..services.avatars import get_avatar
from ..services.lipsync import LipsyncClient, LipsyncError
from ..services.llm import ReplyGenerator
from ..services.messages import insert_message
from ..services.poller import JobPoller
from ..services.segmenter import segment
from ..services.speech import SpeechResult, SpeechSynthesizer

logger = logging.getLogger(__name__)

REPLY_MODE_SEGMENTED = "segmented"
REPLY_MODE_SINGLE_JOB = "single_job"


class AvatarNotFoundError(LookupError):
    """The avatar does not exist or belongs to someone else."""


@dataclass
class ReplySettings:
    """Per-request switches sent by the client."""
    clean_mode: Optional[bool] = None
    skip_short_replies: bool = False


@dataclass
class ReplyResult:
    reply_text: str
    audio: SpeechResult
    message_id: str
    user_message_id: str
    status: MessageStatus
    video_urls: list[str] = field(default_factory=list)
    job_id: Optional[str] = None


class ReplyOrchestrator:
    """Owns the vendor clients for the lifetime of the service."""

    def __init__(
        self,
        generator: ReplyGenerator,
        synthesizer: SpeechSynthesizer,
        lipsync: LipsyncClient,
        poller: JobPoller,
        storage: StorageBackend,
        video_bucket: str = "videos",
        max_chars: int = 280,
        words_per_segment: int = 20,
        skip_short_chars: int = 12,
        clean_mode_default: bool = True,
        lipsync_enabled: bool = True,
        reply_mode: str = REPLY_MODE_SEGMENTED,
    ):
        self.generator = generator
        self.synthesizer = synthesizer
        self.lipsync = lipsync
        self.poller = poller
        self.storage = storage
        self.video_bucket = video_bucket
        self.max_chars = max_chars
        self.words_per_segment = words_per_segment
        self.skip_short_chars = skip_short_chars
        self.clean_mode_default = clean_mode_default
        self.lipsync_enabled = lipsync_enabled
        self.reply_mode = reply_mode

    # ── Entry point ──────────────────────────────────────────────────

    async def handle_reply(
        self,
        db: AsyncSession,
        user_id: str,
        avatar_id: Optional[str],
        user_text: Optional[str],
        lipsync_quality: Optional[str] = None,
        settings: Optional[ReplySettings] = None,
    ) -> ReplyResult:
        settings = settings or ReplySettings()
        start = time.monotonic()

        # 1. Validate before any write
        if not (avatar_id or "").strip():
            raise ValueError("avatarId is required")
        checked = check_input(user_text, self.max_chars)
        if not checked.allowed:
            raise ValueError(checked.reason)
        text = checked.modified_input

        avatar = await get_avatar(db, user_id, avatar_id)
        if avatar is None:
            raise AvatarNotFoundError(f"Avatar {avatar_id} not found")

        # 2. User message is durable before any generation work
        user_message = await insert_message(
            db, user_id=user_id, avatar_id=avatar.id,
            role=MessageRole.USER.value, text=text, status=MessageStatus.DONE.value,
        )
        await db.commit()
        await realtime.publish_pending(db)

        # 3. Clean mode: request → avatar → system default
        clean_mode = settings.clean_mode
        if clean_mode is None:
            clean_mode = avatar.safe_mode if avatar.safe_mode is not None else self.clean_mode_default

        # 4. Reply text
        raw_reply = await self.generator.generate(text, persona=avatar.persona, clean_mode=clean_mode)
        reply_text = truncate(raw_reply, self.max_chars)

        # 5. Whole-reply audio, always
        fallback_audio = await self._speak(reply_text, avatar)

        assistant_message_id = new_uuid()
        quality = _resolve_quality(lipsync_quality, avatar)
        video_urls: list[str] = []
        job_id: Optional[str] = None

        # 6–8. Lip-sync gates
        skip_reason = self._skip_reason(reply_text, settings, avatar)
        if skip_reason:
            logger.info("Lip-sync skipped for %s: %s", assistant_message_id, skip_reason)
        elif self.reply_mode == REPLY_MODE_SINGLE_JOB:
            video_urls, job_id = await self._render_single_job(
                user_id, assistant_message_id, avatar, fallback_audio, quality,
            )
        else:
            segments = segment(reply_text, self.words_per_segment)
            if not segments:
                logger.info("Lip-sync skipped for %s: no segments", assistant_message_id)
            else:
                video_urls = await self._render_segments(
                    user_id, assistant_message_id, avatar, segments, quality,
                )

        # 10. Final status
        if video_urls:
            status = MessageStatus.DONE
        elif job_id:
            status = MessageStatus.RENDERING
        else:
            status = MessageStatus.AUDIO_READY

        # 11. Persist the assistant turn
        await insert_message(
            db, user_id=user_id, avatar_id=avatar.id,
            role=MessageRole.ASSISTANT.value, text=reply_text, status=status.value,
            message_id=assistant_message_id, job_id=job_id,
            video_urls=video_urls, duration_ms=fallback_audio.duration_ms,
        )

        logger.info(
            "Reply %s: %dms | status=%s clips=%d chars=%d",
            assistant_message_id, int((time.monotonic() - start) * 1000),
            status.value, len(video_urls), len(reply_text),
        )
        return ReplyResult(
            reply_text=reply_text,
            audio=fallback_audio,
            message_id=assistant_message_id,
            user_message_id=user_message.id,
            status=status,
            video_urls=video_urls,
            job_id=job_id,
        )

    # ── Policy ───────────────────────────────────────────────────────

    def _skip_reason(self, reply_text: str, settings: ReplySettings, avatar: Avatar) -> Optional[str]:
        if settings.skip_short_replies and len(reply_text) < self.skip_short_chars:
            return "short reply"
        if not self.lipsync_enabled:
            return "lip-sync disabled"
        if not self.lipsync.configured:
            return "lip-sync vendor not configured"
        if not avatar.resolved_talking_url():
            return "no driving visual"
        return None

    # ── Rendering ────────────────────────────────────────────────────

    async def _speak(self, text: str, avatar: Avatar) -> SpeechResult:
        return await self.synthesizer.synthesize(
            text,
            voice_preset=avatar.voice_provider_id or avatar.voice_preset,
            speed=avatar.voice_speed,
            pitch=avatar.voice_pitch,
        )

    async def _upload_audio(self, user_id: str, name: str, speech: SpeechResult) -> str:
        path = f"{user_id}/audio/{name}.{extension_for_mime(speech.mime_type)}"
        asset = await self.storage.upload(self.video_bucket, path, speech.audio, speech.mime_type)
        if not asset.public_url:
            raise LipsyncError(f"Audio upload returned no URL: {path}")
        return asset.public_url

    async def _render_segments(
        self,
        user_id: str,
        message_id: str,
        avatar: Avatar,
        segments: list[str],
        quality: str,
    ) -> list[str]:
        """Render in order. A failed segment is logged and left out."""
        talking_url = avatar.resolved_talking_url()
        video_urls: list[str] = []

        logger.info("Rendering %d segments for %s", len(segments), message_id)
        for index, segment_text in enumerate(segments):
            try:
                speech = await self._speak(segment_text, avatar)
                audio_url = await self._upload_audio(user_id, f"{message_id}-{index}", speech)
                submission = await self.lipsync.submit(
                    talking_url, avatar.base_kind, audio_url, quality=quality,
                )
                clip_url = submission.video_url
                if not clip_url:
                    clip_url = await self.poller.wait(submission.job_id)
                video_urls.append(clip_url)
                logger.info("Segment %d/%d ready for %s", index + 1, len(segments), message_id)
            except Exception as e:
                logger.warning("Segment %d/%d failed for %s: %s", index + 1, len(segments), message_id, e)

        return video_urls

    async def _render_single_job(
        self,
        user_id: str,
        message_id: str,
        avatar: Avatar,
        speech: SpeechResult,
        quality: str,
    ) -> tuple[list[str], Optional[str]]:
        """One render for the whole reply. Returns (clips, job_id to poll later)."""
        try:
            audio_url = await self._upload_audio(user_id, message_id, speech)
            submission = await self.lipsync.submit(
                avatar.resolved_talking_url(), avatar.base_kind, audio_url, quality=quality,
            )
        except Exception as e:
            logger.warning("Single-job render failed for %s: %s", message_id, e)
            return [], None

        if submission.video_url:
            return [submission.video_url], None
        return [], submission.job_id


def _resolve_quality(requested: Optional[str], avatar: Avatar) -> str:
    valid = {q.value for q in LipsyncQuality}
    for candidate in (requested, avatar.lipsync_quality):
        if candidate in valid:
            return candidate
    return LipsyncQuality.FAST.value
