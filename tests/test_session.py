import json

import httpx
import pytest

from basespeak.api.schemas import AvatarOut
from basespeak.client.api import BasespeakClient
from basespeak.client.session import ChatSession, idle_media
from basespeak.client.tracker import JobTrackerRegistry

from conftest import no_sleep

AVATAR = AvatarOut(
    id="a1",
    user_id="user-1",
    name="Nova",
    base_kind="video",
    base_url="https://cdn.test/nova.mp4",
    idle_video_url="https://cdn.test/nova-idle.mp4",
    poster_url="https://cdn.test/nova.png",
    voice_preset="Calm_Woman",
    lipsync_quality="hd",
)


def make_session(handler, **kwargs):
    api = BasespeakClient(
        "http://api.test", "user-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    trackers = JobTrackerRegistry(api, sleep=no_sleep)
    return ChatSession(api, AVATAR, trackers=trackers, **kwargs)


def reply_body(**overrides):
    body = {
        "replyText": "Hello from the lighthouse.",
        "audioB64": "UklGRg==",
        "mime": "audio/wav",
        "messageId": "m-assistant",
        "videoUrls": [],
        "jobId": None,
        "status": "audio_ready",
        "durationMs": 1000,
    }
    body.update(overrides)
    return body


def test_idle_media_by_base_kind():
    assert idle_media(AVATAR) == ("https://cdn.test/nova-idle.mp4", "https://cdn.test/nova.png")
    image = AVATAR.model_copy(update={"base_kind": "image", "base_url": "https://cdn.test/face.png", "poster_url": None})
    assert idle_media(image) == (None, "https://cdn.test/face.png")


@pytest.mark.asyncio
async def test_send_plays_returned_clips():
    sent = {}

    def handler(request: httpx.Request):
        sent["body"] = json.loads(request.content)
        return httpx.Response(200, json=reply_body(
            videoUrls=["https://cdn.test/c0.mp4", "https://cdn.test/c1.mp4"], status="done",
        ))

    session = make_session(handler)
    message = await session.send("  hello  ")

    assert sent["body"]["avatarId"] == "a1"
    assert sent["body"]["userText"] == "hello"
    assert sent["body"]["lipsyncQuality"] == "hd"
    assert [m.role for m in session.messages] == ["user", "assistant"]
    assert session.messages[0].text == "hello"
    assert message.status == "done"
    assert message.video_url == "https://cdn.test/c0.mp4"
    assert session.playback.view.video_url == "https://cdn.test/c0.mp4"
    session.playback.on_clip_ended()
    assert session.playback.view.video_url == "https://cdn.test/c1.mp4"


@pytest.mark.asyncio
async def test_send_clears_active_playback():
    def handler(request: httpx.Request):
        return httpx.Response(200, json=reply_body())

    played = []
    session = make_session(handler, on_audio=lambda b64, mime: played.append(mime))
    session.playback.play("old", ["https://cdn.test/old.mp4"])

    message = await session.send("next")

    assert message.status == "audio_ready"
    assert session.playback.view.is_idle
    assert played == ["audio/wav"]


@pytest.mark.asyncio
async def test_rendering_reply_is_tracked_until_done():
    def handler(request: httpx.Request):
        if request.url.path == "/v1/reply":
            return httpx.Response(200, json=reply_body(jobId="job-1", status="rendering"))
        return httpx.Response(200, json={"status": "done", "mp4Url": "https://cdn.test/job-1.mp4"})

    session = make_session(handler)
    message = await session.send("hi")
    assert message.status == "rendering"
    assert "job-1" in session.trackers

    await session.trackers.track("job-1", lambda payload: None).wait()

    updated = session.get_message("m-assistant")
    assert updated.status == "done"
    assert updated.video_urls == ["https://cdn.test/job-1.mp4"]
    assert session.playback.view.video_url == "https://cdn.test/job-1.mp4"


@pytest.mark.asyncio
async def test_failed_send_keeps_user_message():
    def handler(request: httpx.Request):
        return httpx.Response(500, json={"detail": "Failed to process reply"})

    session = make_session(handler)
    assert await session.send("hello") is None
    assert [m.role for m in session.messages] == ["user"]
    assert session.last_error
    assert not session.sending


@pytest.mark.asyncio
async def test_blank_send_does_nothing():
    def handler(request: httpx.Request):
        raise AssertionError("no request expected")

    session = make_session(handler)
    assert await session.send("   ") is None
    assert session.messages == []


@pytest.mark.asyncio
async def test_history_resumes_rendering_jobs_and_replays():
    def handler(request: httpx.Request):
        if request.url.path.endswith("/messages"):
            return httpx.Response(200, json={"messages": [
                {"id": "u1", "avatarId": "a1", "userId": "user-1", "role": "user",
                 "text": "hi", "status": "done"},
                {"id": "m1", "avatarId": "a1", "userId": "user-1", "role": "assistant",
                 "text": "hey", "status": "done",
                 "videoUrl": "https://cdn.test/a.mp4",
                 "videoUrls": ["https://cdn.test/a.mp4", "https://cdn.test/b.mp4"]},
                {"id": "m2", "avatarId": "a1", "userId": "user-1", "role": "assistant",
                 "text": "one sec", "status": "rendering", "jobId": "job-2", "videoUrls": None},
            ]})
        return httpx.Response(200, json={"status": "running"})

    session = make_session(handler)
    messages = await session.load_history()

    assert [m.id for m in messages] == ["u1", "m1", "m2"]
    assert messages[2].video_urls == []
    assert "job-2" in session.trackers

    assert session.replay("m1")
    assert session.playback.view.video_url == "https://cdn.test/a.mp4"
    assert not session.replay("u1")
    assert not session.replay("nope")

    session.teardown()
    assert len(session.trackers) == 0
    assert session.playback.view.is_idle
