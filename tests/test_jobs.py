import httpx
import pytest

from basespeak.models import Message
from basespeak.orchestrator.jobs import JobNotFoundError, JobStatusService
from basespeak.services.lipsync import JobSnapshot, JobStatus, LipsyncTransportError
from basespeak.services.messages import get_message
from basespeak.services.poller import JobPoller

from conftest import USER_ID, no_sleep


def clip_transport(calls: list, status_code: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request):
        calls.append(str(request.url))
        return httpx.Response(status_code, content=b"\x00mp4", headers={"content-type": "video/mp4"})
    return httpx.MockTransport(handler)


async def rendering_message(db, job_id="job-7") -> Message:
    message = Message(
        id="msg-7",
        user_id=USER_ID,
        avatar_id="avatar-video",
        role="assistant",
        text="Hello from the lighthouse.",
        status="rendering",
        job_id=job_id,
    )
    db.add(message)
    await db.flush()
    return message


@pytest.mark.asyncio
async def test_done_job_is_persisted_once(db, storage, fake_lipsync):
    await rendering_message(db)
    vendor = fake_lipsync(job_statuses={"job-7": [
        JobSnapshot(JobStatus.RUNNING),
        JobSnapshot(JobStatus.DONE, video_url="https://vendor.test/out.mp4"),
    ]})
    downloads = []
    async with httpx.AsyncClient(transport=clip_transport(downloads)) as client:
        service = JobStatusService(JobPoller(vendor, sleep=no_sleep), storage, client)

        first = await service.resolve(db, "job-7", user_id=USER_ID)
        assert first.status == JobStatus.RUNNING
        assert first.message_id == "msg-7"

        done = await service.resolve(db, "job-7", user_id=USER_ID)
        again = await service.resolve(db, "job-7", user_id=USER_ID)

    expected = f"https://cdn.test/videos/{USER_ID}/msg-7.mp4"
    assert done.status == JobStatus.DONE
    assert done.video_url == expected
    assert again.video_url == expected
    assert vendor.fetches == ["job-7", "job-7"]
    assert downloads == ["https://vendor.test/out.mp4"]
    assert storage.objects[("videos", f"{USER_ID}/msg-7.mp4")] == (b"\x00mp4", "video/mp4")

    message = await get_message(db, "msg-7")
    assert message.status == "done"
    assert message.video_urls == [expected]
    assert message.video_path == f"{USER_ID}/msg-7.mp4"


@pytest.mark.asyncio
async def test_failed_job_marks_message_error(db, storage, fake_lipsync):
    await rendering_message(db)
    vendor = fake_lipsync(job_statuses={"job-7": [JobSnapshot(JobStatus.ERROR, error="no face")]})
    async with httpx.AsyncClient() as client:
        service = JobStatusService(JobPoller(vendor, sleep=no_sleep), storage, client)
        result = await service.resolve(db, "job-7")
        repeat = await service.resolve(db, "job-7")

    assert result.status == JobStatus.ERROR
    assert result.error == "no face"
    assert repeat.status == JobStatus.ERROR
    assert vendor.fetches == ["job-7"]
    assert (await get_message(db, "msg-7")).status == "error"


@pytest.mark.asyncio
async def test_download_failure_is_error(db, storage, fake_lipsync):
    await rendering_message(db)
    vendor = fake_lipsync(job_statuses={"job-7": [
        JobSnapshot(JobStatus.DONE, video_url="https://vendor.test/out.mp4"),
    ]})
    async with httpx.AsyncClient(transport=clip_transport([], status_code=410)) as client:
        service = JobStatusService(JobPoller(vendor, sleep=no_sleep), storage, client)
        result = await service.resolve(db, "job-7")

    assert result.status == JobStatus.ERROR
    assert result.error == "Failed to persist video"
    assert (await get_message(db, "msg-7")).status == "error"


@pytest.mark.asyncio
async def test_unknown_or_foreign_job_not_found(db, storage, fake_lipsync):
    await rendering_message(db)
    async with httpx.AsyncClient() as client:
        service = JobStatusService(JobPoller(fake_lipsync(), sleep=no_sleep), storage, client)
        with pytest.raises(JobNotFoundError):
            await service.resolve(db, "nope")
        with pytest.raises(JobNotFoundError):
            await service.resolve(db, "job-7", user_id="intruder")


@pytest.mark.asyncio
async def test_vendor_unreachable_propagates(db, storage, fake_lipsync):
    await rendering_message(db)
    vendor = fake_lipsync(job_statuses={"job-7": [LipsyncTransportError("down")]})
    async with httpx.AsyncClient() as client:
        service = JobStatusService(JobPoller(vendor, sleep=no_sleep), storage, client)
        with pytest.raises(LipsyncTransportError):
            await service.resolve(db, "job-7")

    assert (await get_message(db, "msg-7")).status == "rendering"
