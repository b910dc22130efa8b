"""
Client-side job trackers.

A tracker polls GET /v1/job/{id} in its own asyncio task until the job
is terminal. The registry keeps at most one tracker per job id; tracking
an id that is already tracked returns the existing handle.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

import httpx

from .api import ApiError, BasespeakClient, JobPayload

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("done", "error")

JobCallback = Callable[[JobPayload], Union[None, Awaitable[None]]]


class TrackerHandle:
    """Cancellable handle for one polling task."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self):
        """Stop polling. No callback fires after this returns."""
        self._cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()

    async def wait(self):
        if self.task is None:
            return
        try:
            await self.task
        except asyncio.CancelledError:
            pass


class JobTrackerRegistry:
    def __init__(
        self,
        api: BasespeakClient,
        interval: float = 2.0,
        max_transport_failures: int = 10,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.interval = interval
        self.max_transport_failures = max_transport_failures
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._trackers: dict[str, TrackerHandle] = {}

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._trackers

    def __len__(self) -> int:
        return len(self._trackers)

    def track(self, job_id: str, on_result: JobCallback) -> TrackerHandle:
        existing = self._trackers.get(job_id)
        if existing is not None:
            return existing

        handle = TrackerHandle(job_id)
        self._trackers[job_id] = handle
        handle.task = asyncio.create_task(self._run(handle, on_result))
        handle.task.add_done_callback(lambda _t: self._forget(handle))
        return handle

    def cancel(self, job_id: str):
        handle = self._trackers.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self):
        for handle in list(self._trackers.values()):
            handle.cancel()
        self._trackers.clear()

    def _forget(self, handle: TrackerHandle):
        if self._trackers.get(handle.job_id) is handle:
            del self._trackers[handle.job_id]

    async def _run(self, handle: TrackerHandle, on_result: JobCallback):
        failures = 0
        attempts = 0
        while not handle.cancelled:
            attempts += 1
            try:
                payload = await self.api.poll_job(handle.job_id)
                failures = 0
            except (httpx.TransportError, ApiError) as e:
                if isinstance(e, ApiError) and e.status_code < 500:
                    payload = JobPayload(status="error", error=e.detail)
                else:
                    failures += 1
                    logger.warning(
                        "Job %s poll failed (%d/%d): %s",
                        handle.job_id, failures, self.max_transport_failures, e,
                    )
                    if failures >= self.max_transport_failures:
                        payload = JobPayload(status="error", error="Job status unreachable")
                    else:
                        payload = None

            if payload is not None and payload.status in TERMINAL_STATUSES:
                await self._deliver(handle, on_result, payload)
                return
            if self.max_attempts is not None and attempts >= self.max_attempts:
                await self._deliver(
                    handle, on_result, JobPayload(status="error", error="Job timed out"),
                )
                return
            await self._sleep(self.interval)

    async def _deliver(self, handle: TrackerHandle, on_result: JobCallback, payload: JobPayload):
        if handle.cancelled:
            return
        outcome = on_result(payload)
        if inspect.isawaitable(outcome):
            await outcome
