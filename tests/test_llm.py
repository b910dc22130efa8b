import json

import httpx
import pytest

from basespeak.core.guardrails import MASK
from basespeak.services.llm import (
    GENERIC_SYSTEM_PROMPT,
    MAX_DELAY,
    ReplyGenerator,
    _retry_delay,
    build_system_prompt,
)


def _completion(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 8},
    }


def test_system_prompt_uses_persona():
    assert build_system_prompt(None) == GENERIC_SYSTEM_PROMPT
    assert build_system_prompt("   ") == GENERIC_SYSTEM_PROMPT
    prompt = build_system_prompt("A grumpy pirate")
    assert "A grumpy pirate" in prompt
    assert "character" in prompt


@pytest.mark.asyncio
async def test_no_key_falls_back_to_echo():
    async with httpx.AsyncClient() as client:
        generator = ReplyGenerator(client, api_key="")
        for _ in range(3):
            reply = await generator.generate("hello", None, False)
            assert "hello" in reply


@pytest.mark.asyncio
async def test_fallback_carries_persona_flavor():
    async with httpx.AsyncClient() as client:
        generator = ReplyGenerator(client, api_key="")
        reply = await generator.generate("how are you", persona="A cheerful baker")
    assert reply.startswith("A cheerful baker")
    assert "how are you" in reply


@pytest.mark.asyncio
async def test_generate_sends_chat_completion():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("  Ahoy there!  "))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        generator = ReplyGenerator(client, api_key="k", base_url="https://llm.test/openai/")
        reply = await generator.generate("hi", persona="A pirate")

    assert reply == "Ahoy there!"
    assert seen["url"] == "https://llm.test/openai/chat/completions"
    assert seen["auth"] == "Bearer k"
    assert seen["body"]["temperature"] == 0.75
    assert seen["body"]["max_tokens"] == 320
    assert seen["body"]["messages"][0]["role"] == "system"
    assert seen["body"]["messages"][1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_clean_mode_masks_prompt():
    seen = {}

    def handler(request: httpx.Request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("Let's keep it friendly."))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        generator = ReplyGenerator(client, api_key="k")
        await generator.generate("damn this", clean_mode=True)

    assert seen["body"]["messages"][1]["content"] == f"{MASK} this"


@pytest.mark.asyncio
async def test_provider_error_falls_back():
    def handler(request: httpx.Request):
        return httpx.Response(400, json={"error": "bad request"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        generator = ReplyGenerator(client, api_key="k", max_retries=0)
        reply = await generator.generate("ping")

    assert 'I heard: "ping"' in reply


@pytest.mark.asyncio
async def test_empty_completion_falls_back():
    def handler(request: httpx.Request):
        return httpx.Response(200, json=_completion("   "))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        generator = ReplyGenerator(client, api_key="k")
        reply = await generator.generate("anyone there")

    assert "anyone there" in reply


def test_retry_delay_is_capped():
    assert _retry_delay(0, "600") == MAX_DELAY
    assert _retry_delay(0, "2") == 2.0
    assert _retry_delay(0, "-5") == 0.0
    # HTTP-date form falls back to backoff
    assert 0 < _retry_delay(0, "Wed, 21 Oct 2026 07:28:00 GMT") <= MAX_DELAY
    for attempt in range(12):
        assert _retry_delay(attempt) <= MAX_DELAY
