"""
Guardrails — text normalization applied before and after generation.

Layers:
  1. Whitespace normalization (collapse runs, trim)
  2. Length bounding (truncate with an ellipsis marker)
  3. Clean mode (naive profanity mask, advisory only, not moderation)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────

ELLIPSIS = "…"
MASK = "***"

_WHITESPACE = re.compile(r"\s+")
_PROFANITY = re.compile(r"(shit|fuck|damn|bitch)", re.IGNORECASE)


@dataclass
class GuardrailResult:
    """Result of a guardrail check."""
    allowed: bool
    reason: Optional[str] = None
    modified_input: Optional[str] = None


# ── Normalization ─────────────────────────────────────────────────────

def normalize(text: str) -> str:
    """Collapse every whitespace run to a single space and trim the ends."""
    return _WHITESPACE.sub(" ", text or "").strip()


def truncate(text: str, max_chars: int) -> str:
    """
    Bound text to max_chars characters.

    Longer text keeps its first max_chars - 1 characters followed by a
    single ellipsis. Python strings slice on code points, so a multi-byte
    character is never split.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + ELLIPSIS


def clean(text: str) -> str:
    """Mask a fixed set of profane tokens. Partial matches are masked too."""
    if not text:
        return text
    return _PROFANITY.sub(MASK, text)


# ── Input Guardrails ──────────────────────────────────────────────────

def check_input(text: Optional[str], max_chars: int) -> GuardrailResult:
    """
    Validate and normalize user input.
    Returns GuardrailResult with allowed=False if there is nothing to say.
    """
    normalized = normalize(text or "")
    if not normalized:
        return GuardrailResult(allowed=False, reason="userText is required")

    bounded = truncate(normalized, max_chars)
    if bounded != normalized:
        logger.info("User text truncated from %d to %d chars", len(normalized), len(bounded))
    return GuardrailResult(allowed=True, modified_input=bounded)
