import asyncio

import httpx
import pytest

from basespeak.client.api import BasespeakClient
from basespeak.client.tracker import JobTrackerRegistry

from conftest import no_sleep


def make_api(handler) -> BasespeakClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BasespeakClient("http://api.test", "user-1", client=client)


def scripted(responses: list, calls: list):
    def handler(request: httpx.Request):
        calls.append(request)
        step = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(step, Exception):
            raise step
        status_code, body = step
        return httpx.Response(status_code, json=body)
    return handler


@pytest.mark.asyncio
async def test_tracker_delivers_terminal_result_once():
    calls, results = [], []
    api = make_api(scripted([
        (200, {"status": "queued"}),
        (200, {"status": "running"}),
        (200, {"status": "done", "mp4Url": "https://cdn.test/m.mp4", "messageId": "m"}),
    ], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    handle = registry.track("job-1", results.append)
    await handle.wait()

    assert len(calls) == 3
    assert calls[0].headers["x-user-id"] == "user-1"
    assert calls[0].url.path == "/v1/job/job-1"
    assert [(r.status, r.mp4_url) for r in results] == [("done", "https://cdn.test/m.mp4")]
    assert "job-1" not in registry


@pytest.mark.asyncio
async def test_duplicate_track_is_noop():
    calls, results = [], []
    api = make_api(scripted([(200, {"status": "running"}), (200, {"status": "done", "mp4Url": "u"})], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    first = registry.track("job-1", results.append)
    second = registry.track("job-1", results.append)

    assert first is second
    assert len(registry) == 1
    await first.wait()
    assert len(results) == 1


@pytest.mark.asyncio
async def test_cancel_stops_callbacks():
    calls, results = [], []
    api = make_api(scripted([(200, {"status": "running"})], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    handle = registry.track("job-1", results.append)
    for _ in range(5):
        await asyncio.sleep(0)
    registry.cancel("job-1")
    await handle.wait()
    polled = len(calls)
    for _ in range(5):
        await asyncio.sleep(0)

    assert handle.cancelled
    assert handle.done
    assert results == []
    assert len(calls) == polled
    assert "job-1" not in registry


@pytest.mark.asyncio
async def test_gives_up_after_ten_transport_failures():
    calls, results = [], []
    api = make_api(scripted([httpx.ConnectError("offline")], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    await registry.track("job-1", results.append).wait()

    assert len(calls) == 10
    assert [r.status for r in results] == ["error"]


@pytest.mark.asyncio
async def test_server_errors_count_as_transport_failures():
    calls, results = [], []
    api = make_api(scripted([(502, {"detail": "Lip-sync vendor unreachable"})], calls))
    registry = JobTrackerRegistry(api, max_transport_failures=3, sleep=no_sleep)

    await registry.track("job-1", results.append).wait()

    assert len(calls) == 3
    assert results[0].status == "error"


@pytest.mark.asyncio
async def test_failures_reset_after_success():
    calls, results = [], []
    api = make_api(scripted([
        httpx.ConnectError("offline"),
        httpx.ConnectError("offline"),
        (200, {"status": "running"}),
        httpx.ConnectError("offline"),
        httpx.ConnectError("offline"),
        (200, {"status": "done", "mp4Url": "u"}),
    ], calls))
    registry = JobTrackerRegistry(api, max_transport_failures=3, sleep=no_sleep)

    await registry.track("job-1", results.append).wait()

    assert results[0].status == "done"


@pytest.mark.asyncio
async def test_missing_job_is_terminal_error():
    calls, results = [], []
    api = make_api(scripted([(404, {"detail": "Job not found"})], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    await registry.track("job-1", results.append).wait()

    assert len(calls) == 1
    assert results[0].status == "error"
    assert results[0].error == "Job not found"


@pytest.mark.asyncio
async def test_cancel_all_on_teardown():
    calls, results = [], []
    api = make_api(scripted([(200, {"status": "running"})], calls))
    registry = JobTrackerRegistry(api, sleep=no_sleep)

    handles = [registry.track(f"job-{i}", results.append) for i in range(3)]
    await asyncio.sleep(0)
    registry.cancel_all()
    for handle in handles:
        await handle.wait()

    assert len(registry) == 0
    assert all(h.cancelled for h in handles)
    assert results == []
