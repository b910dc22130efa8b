"""
One chat screen: an avatar, its message list, playback and job trackers.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from ..api.schemas import AvatarOut, MessageOut
from .api import ApiError, BasespeakClient, JobPayload, ReplyPayload
from .playback import PlaybackController
from .tracker import JobTrackerRegistry

logger = logging.getLogger(__name__)

AudioCallback = Callable[[str, str], None]


def idle_media(avatar: AvatarOut) -> tuple[Optional[str], Optional[str]]:
    """(idle clip, poster) for an avatar's waiting state."""
    if avatar.base_kind == "video":
        return avatar.idle_video_url or avatar.base_url, avatar.poster_url
    return None, avatar.poster_url or avatar.base_url


class ChatSession:
    def __init__(
        self,
        api: BasespeakClient,
        avatar: AvatarOut,
        playback: Optional[PlaybackController] = None,
        trackers: Optional[JobTrackerRegistry] = None,
        clean_mode: Optional[bool] = None,
        skip_short_replies: bool = False,
        on_audio: Optional[AudioCallback] = None,
    ):
        self.api = api
        self.avatar = avatar
        idle_url, poster_url = idle_media(avatar)
        self.playback = playback or PlaybackController(idle_url, poster_url)
        self.playback.set_avatar(idle_url, poster_url)
        self.trackers = trackers or JobTrackerRegistry(api)
        self.clean_mode = clean_mode
        self.skip_short_replies = skip_short_replies
        self.on_audio = on_audio
        self.messages: list[MessageOut] = []
        self.sending = False
        self.last_error: Optional[str] = None
        self._closed = False

    def _index(self, message_id: str) -> Optional[int]:
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return None

    def get_message(self, message_id: str) -> Optional[MessageOut]:
        i = self._index(message_id)
        return None if i is None else self.messages[i]

    def _update_message(self, message_id: str, **fields) -> Optional[MessageOut]:
        i = self._index(message_id)
        if i is None:
            return None
        fields["updated_at"] = datetime.now(timezone.utc)
        self.messages[i] = self.messages[i].model_copy(update=fields)
        return self.messages[i]

    async def load_history(self) -> list[MessageOut]:
        """Replace the local list with the server's and resume any open renders."""
        try:
            self.messages = await self.api.fetch_messages(self.avatar.id)
        except (ApiError, httpx.HTTPError) as e:
            logger.warning("Failed to load messages for %s: %s", self.avatar.id, e)
            return self.messages
        for message in self.messages:
            if message.job_id and message.status == "rendering":
                self._track(message.job_id, message.id)
        return self.messages

    async def send(self, text: str) -> Optional[MessageOut]:
        """
        Send one user turn. The local user message appears at once; the
        assistant message is added when the reply lands. Returns the
        assistant message, or None if the request failed.
        """
        text = (text or "").strip()
        if not text or self._closed:
            return None

        self.playback.stop()
        now = datetime.now(timezone.utc)
        self.messages.append(MessageOut(
            id=f"user-{uuid.uuid4().hex[:12]}",
            avatar_id=self.avatar.id,
            user_id=self.api.user_id,
            role="user",
            text=text,
            status="done",
            created_at=now,
            updated_at=now,
        ))

        self.sending = True
        self.last_error = None
        try:
            reply = await self.api.send_reply(
                self.avatar.id,
                text,
                lipsync_quality=self.avatar.lipsync_quality or "fast",
                clean_mode=self.clean_mode,
                skip_short_replies=self.skip_short_replies,
            )
        except (ApiError, httpx.HTTPError) as e:
            logger.warning("Reply failed for avatar %s: %s", self.avatar.id, e)
            self.last_error = "Something went wrong. Please try again."
            return None
        finally:
            self.sending = False

        if self._closed:
            return None
        return self._accept_reply(reply)

    def _accept_reply(self, reply: ReplyPayload) -> MessageOut:
        status = reply.status
        if not status:
            status = "done" if reply.video_urls else ("rendering" if reply.job_id else "audio_ready")

        now = datetime.now(timezone.utc)
        message = MessageOut(
            id=reply.message_id,
            avatar_id=self.avatar.id,
            user_id=self.api.user_id,
            role="assistant",
            text=reply.reply_text,
            status=status,
            job_id=reply.job_id,
            video_url=reply.video_urls[0] if reply.video_urls else None,
            video_urls=reply.video_urls,
            duration_ms=reply.duration_ms,
            created_at=now,
            updated_at=now,
        )
        self.messages.append(message)

        if reply.video_urls:
            self.playback.play(message.id, reply.video_urls)
        else:
            if self.on_audio is not None and reply.audio_b64:
                self.on_audio(reply.audio_b64, reply.mime)
            if reply.job_id:
                self._track(reply.job_id, message.id)
        return message

    def _track(self, job_id: str, message_id: str):
        def on_result(payload: JobPayload):
            self._on_job_result(message_id, payload)
        self.trackers.track(job_id, on_result)

    def _on_job_result(self, message_id: str, payload: JobPayload):
        if self._closed:
            return
        if payload.status == "done" and payload.mp4_url:
            self._update_message(
                message_id, status="done",
                video_url=payload.mp4_url, video_urls=[payload.mp4_url],
            )
            logger.info("Render finished for message %s", message_id)
            self.playback.play(message_id, [payload.mp4_url])
        else:
            self._update_message(message_id, status="error")
            logger.warning("Render failed for message %s: %s", message_id, payload.error)

    def replay(self, message_id: str) -> bool:
        message = self.get_message(message_id)
        if message is None:
            return False
        urls = message.video_urls or ([message.video_url] if message.video_url else [])
        return self.playback.replay(message.id, urls)

    def teardown(self):
        """Stop every tracker; nothing touches this session afterwards."""
        self._closed = True
        self.trackers.cancel_all()
        self.playback.stop()
