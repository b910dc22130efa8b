"""
HTTP client for the BaseSpeak REST API.

Every request carries the caller identity in the x-user-id header. Wire
payloads are parsed into the same camelCase models the server emits.
"""

import logging
from typing import Optional

import httpx

from ..api.schemas import AvatarOut, CamelModel, MessageOut

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx answer from the service."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ReplyPayload(CamelModel):
    reply_text: str
    audio_b64: str = ""
    mime: str = "audio/mpeg"
    message_id: str
    video_urls: list[str] = []
    job_id: Optional[str] = None
    status: str = ""
    duration_ms: Optional[int] = None


class JobPayload(CamelModel):
    status: str
    mp4_url: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class BasespeakClient:
    """Thin async wrapper over the /v1 endpoints."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 180.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def headers(self) -> dict:
        return {"x-user-id": self.user_id}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self.client.request(
            method, f"{self.base_url}{path}", headers=self.headers, **kwargs
        )
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiError(response.status_code, str(detail))
        return response.json()

    async def send_reply(
        self,
        avatar_id: str,
        user_text: str,
        lipsync_quality: Optional[str] = None,
        clean_mode: Optional[bool] = None,
        skip_short_replies: bool = False,
    ) -> ReplyPayload:
        body = {
            "avatarId": avatar_id,
            "userText": user_text,
            "settings": {"skipShortReplies": skip_short_replies},
        }
        if lipsync_quality:
            body["lipsyncQuality"] = lipsync_quality
        if clean_mode is not None:
            body["settings"]["cleanMode"] = clean_mode
        data = await self._request("POST", "/v1/reply", json=body)
        return ReplyPayload.model_validate(data)

    async def poll_job(self, job_id: str) -> JobPayload:
        data = await self._request("GET", f"/v1/job/{job_id}")
        return JobPayload.model_validate(data)

    async def fetch_messages(self, avatar_id: str) -> list[MessageOut]:
        data = await self._request("GET", f"/v1/avatars/{avatar_id}/messages")
        return [MessageOut.model_validate(m) for m in data.get("messages", [])]

    async def fetch_avatars(self) -> list[AvatarOut]:
        data = await self._request("GET", "/v1/avatars")
        return [AvatarOut.model_validate(a) for a in data.get("avatars", [])]

    async def vendor_status(self) -> dict:
        return await self._request("GET", "/status")

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
