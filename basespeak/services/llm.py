"""
Reply generator — OpenAI-compatible chat completions (Novita by default).

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Persona-aware system prompt
  - Deterministic fallback reply when the provider is missing or failing
  - Structured logging
"""

import asyncio
import logging
import random
import time
from typing import Any, Optional

import httpx

from ..core.guardrails import clean, normalize

logger = logging.getLogger(__name__)

# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


def _retry_delay(attempt: int, retry_after: Optional[str] = None) -> float:
    """Seconds to wait before the next attempt. Never more than MAX_DELAY, even if the server asks."""
    if retry_after:
        try:
            return max(0.0, min(MAX_DELAY, float(retry_after)))
        except ValueError:
            pass  # HTTP-date form; use the backoff below
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_retries: int = MAX_RETRIES,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter."""
    last_exc = None

    for attempt in range(max_retries + 1):
        try:
            resp = await client.request(method, url, **kwargs)

            if resp.status_code not in RETRYABLE_STATUS:
                if resp.status_code >= 400:
                    logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
                resp.raise_for_status()
                return resp

            # Retryable error
            last_exc = httpx.HTTPStatusError(
                f"{resp.status_code}", request=resp.request, response=resp
            )
            if attempt == max_retries:
                break
            delay = _retry_delay(attempt, resp.headers.get("retry-after"))
            logger.warning(
                "LLM %d (attempt %d/%d), retrying in %.1fs",
                resp.status_code, attempt + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)

        except httpx.TimeoutException as e:
            last_exc = e
            if attempt == max_retries:
                break
            delay = _retry_delay(attempt)
            logger.warning(
                "LLM timeout (attempt %d/%d), retrying in %.1fs",
                attempt + 1, max_retries + 1, delay,
            )
            await asyncio.sleep(delay)

    raise last_exc or RuntimeError("LLM request failed after retries")


# ── Prompts ──────────────────────────────────────────────────────────

GENERIC_SYSTEM_PROMPT = (
    "You are a friendly avatar. Keep replies conversational and under two short sentences."
)


def build_system_prompt(persona: Optional[str]) -> str:
    trimmed = (persona or "").strip()
    if not trimmed:
        return GENERIC_SYSTEM_PROMPT
    return (
        f"Your personality is described as: {trimmed}\n"
        "Keep replies conversational and under two short sentences. "
        "You are NOT an AI language model, you are the persona above and every "
        "reply must stay in character. You may make up details about your day "
        "or what you are thinking about to keep the conversation going."
    )


def fallback_reply(user_text: str, persona: Optional[str] = None) -> str:
    """Templated reply used whenever the provider cannot answer. Always echoes the input."""
    base = f'I heard: "{user_text}".'
    flavor = normalize(persona or "")[:120]
    if not flavor:
        return f"{base} Let's keep the conversation going!"
    return f"{flavor} - {base}"


# ── Client ───────────────────────────────────────────────────────────

class ReplyGenerator:
    """Produces the assistant's reply text. Never raises for provider trouble."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str = "",
        base_url: str = "https://api.novita.ai/openai",
        model: str = "meta-llama/llama-3.1-8b-instruct",
        temperature: float = 0.75,
        max_tokens: int = 320,
        max_retries: int = MAX_RETRIES,
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def chat(self, messages: list[dict]) -> dict:
        """Chat completion with retry. Returns the full API response as dict."""
        if not self.api_key:
            raise ValueError("No API key for LLM provider. Set NOVITA_KEY.")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.monotonic()
        resp = await _retry_request(
            self.client, "POST", f"{self.base_url}/chat/completions",
            max_retries=self.max_retries, json=payload, headers=headers,
        )
        data = resp.json()

        usage = data.get("usage") or {}
        logger.info(
            "LLM chat: %dms | in=%d out=%d tokens | model=%s",
            int((time.monotonic() - start) * 1000),
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
            self.model,
        )
        return data

    async def generate(
        self,
        user_text: str,
        persona: Optional[str] = None,
        clean_mode: bool = False,
    ) -> str:
        """
        Reply to user_text in the persona's voice.

        Clean mode masks the input before it reaches the provider. Any
        provider failure, empty completion or missing key yields
        fallback_reply(). The caller bounds the length.
        """
        prompt = clean(user_text) if clean_mode else user_text

        if not self.configured:
            logger.info("LLM not configured, using fallback reply")
            return fallback_reply(prompt, persona)

        messages = [
            {"role": "system", "content": build_system_prompt(persona)},
            {"role": "user", "content": prompt},
        ]
        try:
            data = await self.chat(messages)
            content = (data.get("choices") or [{}])[0].get("message", {}).get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
            logger.warning("LLM returned an empty completion, using fallback reply")
        except Exception as e:
            logger.error("LLM call failed, using fallback reply: %s", e)

        return fallback_reply(prompt, persona)
