import asyncio
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from basespeak.core.database import create_engine_for, init_db
from basespeak.core.storage import StorageBackend, StoredAsset
from basespeak.models import Avatar
from basespeak.services.lipsync import (
    JobSnapshot,
    JobStatus,
    LipsyncClient,
    LipsyncError,
    LipsyncSubmission,
)

USER_ID = "user-1"


class MemoryStorage(StorageBackend):
    """Keeps uploads in a dict and hands out fake CDN URLs."""

    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    async def upload(self, bucket, path, file_bytes, mime_type):
        self.objects[(bucket, path)] = (file_bytes, mime_type)
        return StoredAsset(path=path, public_url=self.public_url(bucket, path))

    def public_url(self, bucket, path):
        if not path:
            return None
        return f"https://cdn.test/{bucket}/{path}"

    async def read_file(self, bucket, path):
        return self.objects.get((bucket, path))


class FakeLipsync(LipsyncClient):
    """
    Scripted lip-sync vendor.

    Segment index is read from the audio URL ("...-<index>.<ext>").
    fail_segments raise on submit; immediate=False hands back job ids whose
    status comes from job_statuses (a list consumed one per fetch).
    """

    name = "fake"

    def __init__(
        self,
        fail_segments=(),
        immediate: bool = True,
        job_statuses: Optional[dict[str, list]] = None,
        configured: bool = True,
    ):
        super().__init__(client=None, api_key="key" if configured else "")
        self.fail_segments = set(fail_segments)
        self.immediate = immediate
        self.job_statuses = job_statuses or {}
        self.submissions: list[dict] = []
        self.fetches: list[str] = []

    async def submit(self, base_url, base_kind, audio_url, quality="fast"):
        index = audio_url.rsplit("-", 1)[-1].split(".")[0]
        self.submissions.append(
            {"base_url": base_url, "base_kind": base_kind, "audio_url": audio_url, "quality": quality}
        )
        if index.isdigit() and int(index) in self.fail_segments:
            raise LipsyncError(f"segment {index} rejected")
        if self.immediate:
            return LipsyncSubmission(video_url=f"https://clips.test/clip{index}.mp4")
        return LipsyncSubmission(job_id=f"job-{index}")

    async def fetch_job(self, job_id):
        self.fetches.append(job_id)
        script = self.job_statuses.get(job_id)
        if not script:
            return JobSnapshot(JobStatus.DONE, video_url=f"https://clips.test/{job_id}.mp4")
        step = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(step, Exception):
            raise step
        return step


async def no_sleep(_seconds):
    await asyncio.sleep(0)


@pytest_asyncio.fixture
async def db():
    engine = create_engine_for("sqlite://")
    await init_db(engine)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def fake_lipsync():
    return FakeLipsync


@pytest.fixture
def fast_sleep():
    return no_sleep


@pytest_asyncio.fixture
async def video_avatar(db):
    avatar = Avatar(
        id="avatar-video",
        user_id=USER_ID,
        name="Nova",
        base_kind="video",
        base_mime="video/mp4",
        base_url="https://cdn.test/bases/nova.mp4",
        talking_video_url="https://cdn.test/bases/nova-talking.mp4",
        idle_video_url="https://cdn.test/bases/nova-idle.mp4",
        voice_preset="Calm_Woman",
        persona="A calm lighthouse keeper",
    )
    db.add(avatar)
    await db.commit()
    return avatar


@pytest_asyncio.fixture
async def image_avatar(db):
    avatar = Avatar(
        id="avatar-image",
        user_id=USER_ID,
        name="Pix",
        base_kind="image",
        base_mime="image/png",
        base_url="https://cdn.test/bases/pix.png",
        voice_preset="Wise_Woman",
    )
    db.add(avatar)
    await db.commit()
    return avatar
