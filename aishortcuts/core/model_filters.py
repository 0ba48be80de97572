"""Capability classification for provider model identifiers.

Model IDs returned by ``GET /v1/models`` carry no capability metadata, so
capabilities are inferred from naming conventions. Adjust the pattern
tables below when the provider introduces new naming schemes.

Patterns are case-insensitive regular expressions, unanchored unless they
contain ``^``. A pattern that fails to compile never matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple

from aishortcuts.utils.log import get_logger

logger = get_logger()

# whisper-1, gpt-4o-transcribe, gpt-4o-mini-transcribe, ...
TRANSCRIPTION_PATTERNS: Tuple[str, ...] = ("whisper", "transcribe")

# tts-1, tts-1-hd, gpt-4o-mini-tts, ...
TTS_PATTERNS: Tuple[str, ...] = ("tts",)

# gpt-image-*, plus DALL·E IDs.
IMAGE_GENERATION_PATTERNS: Tuple[str, ...] = ("dall-e", "^gpt-image")

# gpt-4o, gpt-4-turbo, chatgpt-4o-latest, o1, o1-preview, o3-mini, ...
CHAT_INCLUSION_PATTERNS: Tuple[str, ...] = (
    "^gpt-",
    "^chatgpt-",
    r"^o\d(?:-|$)",
)

# Specialised models that match the chat prefixes but cannot serve chat completions.
CHAT_EXCLUSION_PATTERNS: Tuple[str, ...] = (
    "embedding",
    "moderation",
    "whisper",
    "transcribe",
    "tts",
    "dall-e",
    "^gpt-image",
    "realtime",
    "audio-preview",
    "sora",
    "computer",
    "search",
    "audio",
)


class Capability(str, Enum):
    """Features whose models are picked from the catalog."""

    CHAT = "chat"
    IMAGE = "image"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"


@dataclass(frozen=True)
class CapabilityProfile:
    """How one capability is recognised and which model it falls back to."""

    capability: Capability
    display_name: str
    version_prefix: str
    fallback_model: str


CAPABILITY_PROFILES = {
    Capability.CHAT: CapabilityProfile(Capability.CHAT, "Chat", "gpt-", "gpt-5"),
    Capability.IMAGE: CapabilityProfile(
        Capability.IMAGE, "Image Generation", "gpt-image-", "gpt-image-1.5"
    ),
    Capability.SPEECH: CapabilityProfile(Capability.SPEECH, "Text-to-Speech", "tts-", "tts-1"),
    Capability.TRANSCRIPTION: CapabilityProfile(
        Capability.TRANSCRIPTION, "Audio Transcription", "whisper-", "whisper-1"
    ),
}


_LEADING_DECIMAL = re.compile(r"[0-9]+(?:\.[0-9]+)?")


@lru_cache(maxsize=256)
def _compiled_regex(pattern: str) -> Optional["re.Pattern[str]"]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.debug(
            "[model_filters] Ignoring invalid pattern",
            extra={"pattern": pattern, "error": str(exc)},
        )
        return None


def matches(model_id: str, patterns: Iterable[str]) -> bool:
    """Return True if *model_id* matches at least one pattern."""
    for pattern in patterns:
        regex = _compiled_regex(pattern)
        if regex is not None and regex.search(model_id):
            return True
    return False


def is_chat_model(model_id: str) -> bool:
    """Chat-capable means: some inclusion pattern matches and no exclusion does."""
    return matches(model_id, CHAT_INCLUSION_PATTERNS) and not matches(
        model_id, CHAT_EXCLUSION_PATTERNS
    )


def is_image_model(model_id: str) -> bool:
    return matches(model_id, IMAGE_GENERATION_PATTERNS)


def is_tts_model(model_id: str) -> bool:
    return matches(model_id, TTS_PATTERNS)


def is_transcription_model(model_id: str) -> bool:
    return matches(model_id, TRANSCRIPTION_PATTERNS)


_CAPABILITY_PREDICATES = {
    Capability.CHAT: is_chat_model,
    Capability.IMAGE: is_image_model,
    Capability.SPEECH: is_tts_model,
    Capability.TRANSCRIPTION: is_transcription_model,
}


def has_capability(model_id: str, capability: Capability) -> bool:
    return _CAPABILITY_PREDICATES[capability](model_id)


def parse_leading_decimal(text: str) -> Optional[Decimal]:
    """Parse digits with at most one dot from the start of *text*.

    ``"4.1-mini"`` → ``Decimal("4.1")``, ``"5"`` → ``Decimal("5")``,
    ``"image-1"`` → ``None``. Parsing stops at the first character outside
    that grammar.
    """
    match = _LEADING_DECIMAL.match(text)
    if match is None:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def highest_version_model_id(model_ids: Sequence[str], prefix: str) -> Optional[str]:
    """Return the ID with the numerically highest version after *prefix*.

    - prefix ``gpt-`` over ``gpt-4o``, ``gpt-4.1-mini``, ``gpt-5`` selects ``gpt-5``.
    - prefix ``gpt-image-`` over ``gpt-image-1``, ``gpt-image-1.5`` selects ``gpt-image-1.5``.

    IDs whose remainder has no leading number are skipped. On equal versions
    the first ID encountered is kept.
    """
    normalized_prefix = prefix.lower()
    best_id: Optional[str] = None
    best_version: Optional[Decimal] = None

    for model_id in model_ids:
        normalized = model_id.lower()
        if not normalized.startswith(normalized_prefix):
            continue
        version = parse_leading_decimal(normalized[len(normalized_prefix) :])
        if version is None:
            continue
        if best_version is None or version > best_version:
            best_id = model_id
            best_version = version

    return best_id
