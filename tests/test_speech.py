import io
import json
import wave

import httpx
import pytest

from basespeak.services.speech import (
    SpeechSynthesizer,
    estimate_duration_ms,
    synthesize_fallback_tone,
)


def _wav_seconds(data: bytes) -> float:
    with wave.open(io.BytesIO(data), "rb") as wav:
        return wav.getnframes() / wav.getframerate()


def test_duration_estimate_has_one_second_floor():
    assert estimate_duration_ms("hi") == 1000
    assert estimate_duration_ms(" ".join(["word"] * 150)) == 60_000


def test_fallback_tone_length_scales_and_clamps():
    short = synthesize_fallback_tone("hey")
    assert short.mime_type == "audio/wav"
    assert short.is_fallback
    assert short.duration_ms == 1000
    assert _wav_seconds(short.audio) == 1

    assert synthesize_fallback_tone("x" * 120).duration_ms == 3000
    longest = synthesize_fallback_tone("x" * 2000)
    assert longest.duration_ms == 8000
    assert _wav_seconds(longest.audio) == 8


@pytest.mark.asyncio
async def test_no_key_uses_placeholder_tone():
    async with httpx.AsyncClient() as client:
        result = await SpeechSynthesizer(client, api_key="").synthesize("hello there")
    assert result.is_fallback
    assert result.audio[:4] == b"RIFF"


@pytest.mark.asyncio
async def test_hex_audio_is_decoded_with_reported_duration():
    seen = {}

    def handler(request: httpx.Request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "audio": b"ID3fake".hex(),
            "extra_info": {"audio_length": 2345},
        })

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        synth = SpeechSynthesizer(client, api_key="k", url="https://tts.test/v3")
        result = await synth.synthesize("hello", voice_preset="Calm_Woman", speed=1.2)

    assert result.audio == b"ID3fake"
    assert result.mime_type == "audio/mpeg"
    assert result.duration_ms == 2345
    assert not result.is_fallback
    voice = seen["body"]["voice_setting"]
    assert voice["voice_id"] == "Calm_Woman"
    assert voice["speed"] == 1.2
    assert voice["vol"] == 1.0
    assert voice["pitch"] == 0
    assert seen["body"]["output_format"] == "hex"


@pytest.mark.asyncio
async def test_missing_duration_is_estimated():
    def handler(request: httpx.Request):
        return httpx.Response(200, json={"data": {"audio": "00ff"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await SpeechSynthesizer(client, api_key="k").synthesize("just a few words")

    assert result.audio == b"\x00\xff"
    assert result.duration_ms == 1600


@pytest.mark.asyncio
async def test_provider_failure_falls_back():
    def handler(request: httpx.Request):
        return httpx.Response(503, text="unavailable")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await SpeechSynthesizer(client, api_key="k").synthesize("hello")

    assert result.is_fallback
    assert result.mime_type == "audio/wav"
