"""
Lip-sync vendor clients (Gooey).

Two API generations, one internal shape:
  - GooeyLipsyncClient:      POST /lipsync → body carries job_id and/or mp4_url
  - GooeyAsyncLipsyncClient: POST /v3/Lipsync/async → Location header to poll

Vendor field names and status words stop here. Everything past this module
sees LipsyncSubmission / JobSnapshot and the four JobStatus values.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


# ── Status vocabulary ────────────────────────────────────────────────

class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


STATUS_ALIASES: dict[str, JobStatus] = {
    "queued": JobStatus.QUEUED,
    "pending": JobStatus.QUEUED,
    "starting": JobStatus.QUEUED,
    "created": JobStatus.QUEUED,
    "running": JobStatus.RUNNING,
    "processing": JobStatus.RUNNING,
    "working": JobStatus.RUNNING,
    "in_progress": JobStatus.RUNNING,
    "done": JobStatus.DONE,
    "completed": JobStatus.DONE,
    "complete": JobStatus.DONE,
    "success": JobStatus.DONE,
    "succeeded": JobStatus.DONE,
    "error": JobStatus.ERROR,
    "failed": JobStatus.ERROR,
    "failure": JobStatus.ERROR,
    "cancelled": JobStatus.ERROR,
    "canceled": JobStatus.ERROR,
}


def normalize_status(raw: Any) -> JobStatus:
    """Map a vendor status word onto JobStatus. Unknown words are QUEUED, never DONE."""
    if raw is None:
        return JobStatus.QUEUED
    return STATUS_ALIASES.get(str(raw).strip().lower(), JobStatus.QUEUED)


# ── Results & errors ─────────────────────────────────────────────────

@dataclass
class LipsyncSubmission:
    """Either an immediate clip URL, a job handle to poll, or both."""
    job_id: Optional[str] = None
    video_url: Optional[str] = None


@dataclass
class JobSnapshot:
    status: JobStatus
    video_url: Optional[str] = None
    error: Optional[str] = None


class LipsyncError(Exception):
    """Lip-sync vendor failure."""


class LipsyncTransportError(LipsyncError):
    """The vendor could not be reached or answered with a server error."""


class LipsyncJobFailed(LipsyncError):
    """The vendor reported the job as failed."""


class LipsyncTimeout(LipsyncError):
    """The job never reached a terminal status within the attempt budget."""


def _first(data: dict, *keys: str) -> Optional[Any]:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


# ── Base client ──────────────────────────────────────────────────────

class LipsyncClient(ABC):
    name: str = ""

    def __init__(self, client: httpx.AsyncClient, api_key: str = ""):
        self.client = client
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @abstractmethod
    async def submit(
        self,
        base_url: str,
        base_kind: str,
        audio_url: str,
        quality: str = "fast",
    ) -> LipsyncSubmission:
        """Start a render of base_url driven by audio_url."""
        ...

    @abstractmethod
    async def fetch_job(self, job_id: str) -> JobSnapshot:
        """Current status of a job. Raises LipsyncTransportError when unreachable."""
        ...

    async def _get_json(self, url: str) -> Optional[dict]:
        """GET a status document. None on 404, LipsyncTransportError otherwise."""
        try:
            resp = await self.client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            raise LipsyncTransportError(f"{self.name} unreachable: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.error("%s status error %d: %s", self.name, resp.status_code, resp.text[:500])
            raise LipsyncTransportError(f"{self.name} status request failed ({resp.status_code})")
        try:
            return resp.json()
        except ValueError as e:
            raise LipsyncTransportError(f"{self.name} returned invalid JSON") from e

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        if not self.configured:
            raise LipsyncError(f"{self.name} is not configured")
        try:
            resp = await self.client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise LipsyncTransportError(f"{self.name} unreachable: {e}") from e
        if resp.status_code >= 400:
            logger.error("%s submit error %d: %s", self.name, resp.status_code, resp.text[:500])
            raise LipsyncError(f"{self.name} responded with {resp.status_code}")
        return resp


# ── Gooey: body-handle API ───────────────────────────────────────────

class GooeyLipsyncClient(LipsyncClient):
    name = "gooey"

    def __init__(self, client: httpx.AsyncClient, api_key: str = "", api_url: str = "https://api.gooey.ai/v1"):
        super().__init__(client, api_key)
        self.api_url = api_url.rstrip("/")

    async def submit(
        self,
        base_url: str,
        base_kind: str,
        audio_url: str,
        quality: str = "fast",
    ) -> LipsyncSubmission:
        payload: dict[str, Any] = {"audio_url": audio_url, "quality": quality}
        if base_kind == "image":
            payload["face_image_url"] = base_url
        else:
            payload["input_video_url"] = base_url

        resp = await self._post(f"{self.api_url}/lipsync", payload)
        data = resp.json() or {}
        submission = LipsyncSubmission(
            job_id=_first(data, "job_id", "jobId", "id"),
            video_url=_first(data, "mp4_url", "mp4Url", "output_video"),
        )
        if not submission.job_id and not submission.video_url:
            raise LipsyncError("gooey returned neither a job id nor a clip URL")
        logger.info("gooey submission: job=%s immediate=%s", submission.job_id, bool(submission.video_url))
        return submission

    async def fetch_job(self, job_id: str) -> JobSnapshot:
        data = await self._get_json(f"{self.api_url}/jobs/{job_id}")
        if data is None:
            return JobSnapshot(status=JobStatus.ERROR, error="Job not found")
        status = normalize_status(_first(data, "status", "state"))
        return JobSnapshot(
            status=status,
            video_url=_first(data, "mp4_url", "mp4Url", "result_url", "output_video"),
            error=_first(data, "error", "message") if status == JobStatus.ERROR else None,
        )


# ── Gooey: async run API (Location header) ───────────────────────────

class GooeyAsyncLipsyncClient(LipsyncClient):
    name = "gooey_async"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str = "",
        async_url: str = "https://api.gooey.ai/v3/Lipsync/async",
        model: str = "Wav2Lip",
    ):
        super().__init__(client, api_key)
        self.async_url = async_url.rstrip("/")
        self.model = model

    def _status_url(self, job_id: str) -> str:
        if job_id.startswith(("http://", "https://")):
            return job_id
        base = self.async_url.rsplit("/async", 1)[0]
        return f"{base}/status?run_id={job_id}"

    async def submit(
        self,
        base_url: str,
        base_kind: str,
        audio_url: str,
        quality: str = "fast",
    ) -> LipsyncSubmission:
        payload = {
            "input_face": base_url,
            "input_audio": audio_url,
            "selected_model": self.model,
            "quality": quality,
        }
        resp = await self._post(self.async_url, payload)

        try:
            data = resp.json() or {}
        except ValueError:
            data = {}
        output = data.get("output") or {}
        handle = _first(data, "run_id", "id") or _run_id_from_location(resp.headers.get("location"))
        submission = LipsyncSubmission(job_id=handle, video_url=_first(output, "output_video"))
        if not submission.job_id and not submission.video_url:
            raise LipsyncError("gooey_async returned no Location header")
        logger.info("gooey_async submission: job=%s", submission.job_id)
        return submission

    async def fetch_job(self, job_id: str) -> JobSnapshot:
        data = await self._get_json(self._status_url(job_id))
        if data is None:
            return JobSnapshot(status=JobStatus.ERROR, error="Job not found")
        status = normalize_status(data.get("status"))
        output = data.get("output") or {}
        return JobSnapshot(
            status=status,
            video_url=_first(output, "output_video") or _first(data, "output_video"),
            error=_first(data, "detail", "error") if status == JobStatus.ERROR else None,
        )


def _run_id_from_location(location: Optional[str]) -> Optional[str]:
    """Location points at the status URL; the run id is its run_id query param."""
    if not location:
        return None
    return httpx.URL(location).params.get("run_id") or location


def build_lipsync_client(vendor: str, client: httpx.AsyncClient, settings) -> LipsyncClient:
    """Pick the lip-sync adapter named by FF_LIPSYNC_VENDOR."""
    if vendor == "gooey_async":
        return GooeyAsyncLipsyncClient(
            client, settings.gooey_key, settings.gooey_async_url, settings.gooey_model
        )
    return GooeyLipsyncClient(client, settings.gooey_key, settings.gooey_api_url)
