"""
Job status for single-job replies (GET /v1/job/{job_id}).

The persisted message is consulted before the vendor: once a job's
message is terminal, repeated checks are answered from the database.
A finished clip is copied into our own videos bucket before the message
is marked done, so the stored URL outlives the vendor's.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.storage import StorageBackend
from ..models.message import MessageStatus
from ..services.lipsync import JobStatus
from ..services.messages import find_message_by_job_id, update_message
from ..services.poller import JobPoller

logger = logging.getLogger(__name__)


class JobNotFoundError(LookupError):
    """No message carries this job id."""


@dataclass
class JobStatusResult:
    status: JobStatus
    video_url: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class JobStatusService:
    def __init__(
        self,
        poller: JobPoller,
        storage: StorageBackend,
        client: httpx.AsyncClient,
        video_bucket: str = "videos",
    ):
        self.poller = poller
        self.storage = storage
        self.client = client
        self.video_bucket = video_bucket

    async def resolve(
        self, db: AsyncSession, job_id: str, user_id: Optional[str] = None
    ) -> JobStatusResult:
        """
        Current status of job_id. Raises JobNotFoundError (also for another
        user's job), or LipsyncTransportError when the vendor cannot be reached.
        """
        message = await find_message_by_job_id(db, job_id)
        if message is None or (user_id is not None and message.user_id != user_id):
            raise JobNotFoundError(f"Job {job_id} not found")

        if message.status == MessageStatus.DONE.value and message.video_url:
            return JobStatusResult(JobStatus.DONE, message.video_url, message.id)
        if message.status == MessageStatus.ERROR.value:
            return JobStatusResult(JobStatus.ERROR, message_id=message.id, error="Lip-sync job failed")

        snapshot = await self.poller.check(job_id)

        if snapshot.status == JobStatus.ERROR:
            await update_message(db, message, status=MessageStatus.ERROR.value)
            return JobStatusResult(
                JobStatus.ERROR, message_id=message.id,
                error=snapshot.error or "Lip-sync job failed",
            )

        if snapshot.status == JobStatus.DONE and snapshot.video_url:
            try:
                video_bytes, content_type = await self._download(snapshot.video_url)
                asset = await self.storage.upload(
                    self.video_bucket, f"{message.user_id}/{message.id}.mp4",
                    video_bytes, content_type,
                )
            except Exception as e:
                logger.error("Failed to persist clip for job %s: %s", job_id, e)
                await update_message(db, message, status=MessageStatus.ERROR.value)
                return JobStatusResult(
                    JobStatus.ERROR, message_id=message.id, error="Failed to persist video",
                )

            video_url = asset.public_url or snapshot.video_url
            await update_message(
                db, message, status=MessageStatus.DONE.value,
                video_urls=[video_url], video_path=asset.path,
            )
            logger.info("Job %s done: message=%s", job_id, message.id)
            return JobStatusResult(JobStatus.DONE, video_url, message.id)

        return JobStatusResult(snapshot.status, message_id=message.id)

    async def _download(self, url: str) -> tuple[bytes, str]:
        resp = await self.client.get(url)
        if resp.status_code >= 400:
            raise RuntimeError(f"Clip download failed {resp.status_code}: {resp.text[:200]}")
        content_type = resp.headers.get("content-type", "video/mp4").split(";")[0].strip()
        return resp.content, content_type or "video/mp4"
