"""
Job poller — drives a lip-sync job to a terminal status.

Budgets keep every wait bounded:
  - max_attempts status checks in total (timeout → LipsyncTimeout)
  - max_transport_failures unreachable checks (→ LipsyncTransportError)
Terminal snapshots are cached, so re-polling a finished job never calls the vendor again.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from .lipsync import (
    JobSnapshot,
    JobStatus,
    LipsyncClient,
    LipsyncJobFailed,
    LipsyncTimeout,
    LipsyncTransportError,
)

logger = logging.getLogger(__name__)

TERMINAL_CACHE_SIZE = 1024


class JobPoller:
    def __init__(
        self,
        lipsync: LipsyncClient,
        interval: float = 2.0,
        max_attempts: int = 30,
        max_transport_failures: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.lipsync = lipsync
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_transport_failures = max_transport_failures
        self._sleep = sleep
        self._terminal: OrderedDict[str, JobSnapshot] = OrderedDict()

    def cached(self, job_id: str) -> Optional[JobSnapshot]:
        return self._terminal.get(job_id)

    def _remember(self, job_id: str, snapshot: JobSnapshot) -> None:
        self._terminal[job_id] = snapshot
        self._terminal.move_to_end(job_id)
        while len(self._terminal) > TERMINAL_CACHE_SIZE:
            self._terminal.popitem(last=False)

    async def check(self, job_id: str) -> JobSnapshot:
        """One status check. Terminal results are served from cache."""
        cached = self._terminal.get(job_id)
        if cached is not None:
            return cached

        snapshot = await self.lipsync.fetch_job(job_id)
        if snapshot.status == JobStatus.ERROR or (
            snapshot.status == JobStatus.DONE and snapshot.video_url
        ):
            self._remember(job_id, snapshot)
        return snapshot

    async def wait(self, job_id: str) -> str:
        """
        Poll until the job finishes. Returns the clip URL.

        Raises LipsyncJobFailed, LipsyncTimeout or LipsyncTransportError.
        """
        transport_failures = 0

        for attempt in range(1, self.max_attempts + 1):
            try:
                snapshot = await self.check(job_id)
            except LipsyncTransportError as e:
                transport_failures += 1
                logger.warning(
                    "Poll %s failed (%d/%d transport failures): %s",
                    job_id, transport_failures, self.max_transport_failures, e,
                )
                if transport_failures >= self.max_transport_failures:
                    self._remember(job_id, JobSnapshot(JobStatus.ERROR, error=str(e)))
                    raise
            else:
                logger.info("Poll %s attempt %d: %s", job_id, attempt, snapshot.status.value)
                if snapshot.status == JobStatus.DONE and snapshot.video_url:
                    return snapshot.video_url
                if snapshot.status == JobStatus.ERROR:
                    raise LipsyncJobFailed(snapshot.error or f"Job {job_id} failed")

            if attempt < self.max_attempts:
                await self._sleep(self.interval)

        logger.error("Job %s timed out after %d polls", job_id, self.max_attempts)
        raise LipsyncTimeout(f"Job {job_id} not finished after {self.max_attempts} polls")
