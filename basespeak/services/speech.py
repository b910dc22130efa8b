"""
Speech synthesizer — Novita MiniMax TTS with a local tone fallback.

The provider answers with hex-encoded MP3. Without a key, or when the call
fails, a short sine-tone WAV stands in so the reply still has audio.
"""

import base64
import io
import logging
import math
import struct
import time
import wave
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 1.0
DEFAULT_VOLUME = 1.0
DEFAULT_PITCH = 0

WORDS_PER_MINUTE = 150
MIN_DURATION_MS = 1000

# Placeholder tone
TONE_SAMPLE_RATE = 16000
TONE_FREQUENCY = 440
TONE_AMPLITUDE = 0.2
TONE_CHARS_PER_SECOND = 40
TONE_MIN_SECONDS = 1
TONE_MAX_SECONDS = 8


@dataclass
class SpeechResult:
    audio: bytes
    mime_type: str
    duration_ms: int
    is_fallback: bool = False

    @property
    def audio_b64(self) -> str:
        return base64.b64encode(self.audio).decode("ascii")


def estimate_duration_ms(text: str) -> int:
    """~150 words per minute, never under one second."""
    words = len(text.split()) or 1
    return max(MIN_DURATION_MS, round(words / WORDS_PER_MINUTE * 60 * 1000))


def synthesize_fallback_tone(text: str) -> SpeechResult:
    """16 kHz mono 16-bit sine WAV, one second per 40 chars, clamped to 1–8 s."""
    seconds = max(TONE_MIN_SECONDS, min(TONE_MAX_SECONDS, math.ceil(len(text) / TONE_CHARS_PER_SECOND)))
    total_samples = seconds * TONE_SAMPLE_RATE
    peak = TONE_AMPLITUDE * 32767

    frames = bytearray()
    for i in range(total_samples):
        value = math.sin(2 * math.pi * TONE_FREQUENCY * i / TONE_SAMPLE_RATE) * peak
        frames += struct.pack("<h", int(value))

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(TONE_SAMPLE_RATE)
        wav.writeframes(bytes(frames))

    return SpeechResult(
        audio=buf.getvalue(),
        mime_type="audio/wav",
        duration_ms=seconds * 1000,
        is_fallback=True,
    )


class SpeechSynthesizer:
    """Turns reply text into audio. Never raises for provider trouble."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str = "",
        url: str = "https://api.novita.ai/v3/minimax-speech-2.5-turbo-preview",
        default_voice: str = "Wise_Woman",
    ):
        self.client = client
        self.api_key = api_key
        self.url = url
        self.default_voice = default_voice

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _payload(
        self, text: str, voice_preset: Optional[str], speed: Optional[float], pitch: Optional[float]
    ) -> dict:
        return {
            "text": text,
            "voice_setting": {
                "voice_id": voice_preset or self.default_voice,
                "speed": speed if speed is not None else DEFAULT_SPEED,
                "vol": DEFAULT_VOLUME,
                "pitch": int(pitch) if pitch is not None else DEFAULT_PITCH,
                "emotion": "neutral",
            },
            "audio_setting": {
                "format": "mp3",
                "sample_rate": 32000,
                "bitrate": 128000,
                "channel": 1,
            },
            "output_format": "hex",
            "stream": False,
        }

    async def synthesize(
        self,
        text: str,
        voice_preset: Optional[str] = None,
        speed: Optional[float] = None,
        pitch: Optional[float] = None,
    ) -> SpeechResult:
        if not self.configured:
            logger.info("TTS not configured, using placeholder tone")
            return synthesize_fallback_tone(text)

        start = time.monotonic()
        try:
            resp = await self.client.post(
                self.url,
                json=self._payload(text, voice_preset, speed, pitch),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
            if resp.status_code >= 400:
                logger.error("TTS API error %d: %s", resp.status_code, resp.text[:500])
            resp.raise_for_status()
            body = resp.json()

            data = body.get("data") or {}
            audio_hex = body.get("audio") or data.get("audio")
            if isinstance(audio_hex, str) and audio_hex:
                audio = bytes.fromhex(audio_hex)
                duration_ms = _reported_duration(body)
                if duration_ms is None:
                    duration_ms = estimate_duration_ms(text)
                logger.info(
                    "TTS: %dms | %d bytes | voice=%s",
                    int((time.monotonic() - start) * 1000), len(audio),
                    voice_preset or self.default_voice,
                )
                return SpeechResult(audio=audio, mime_type="audio/mpeg", duration_ms=duration_ms)

            logger.warning("TTS response carried no audio, using placeholder tone")
        except Exception as e:
            logger.error("TTS failed, using placeholder tone: %s", e)

        return synthesize_fallback_tone(text)


def _reported_duration(body: dict) -> Optional[int]:
    data = body.get("data") or {}
    extra = body.get("extra_info") or {}
    for value in (data.get("duration_ms"), extra.get("audio_length")):
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return int(value)
    return None
