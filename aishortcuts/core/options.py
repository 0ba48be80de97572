"""Closed option sets offered to callers of the speech and image features."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class VoiceOption(str, Enum):
    """Built-in text-to-speech voices."""

    ALLOY = "alloy"
    ECHO = "echo"
    FABLE = "fable"
    ONYX = "onyx"
    NOVA = "nova"
    SHIMMER = "shimmer"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str) -> Optional["VoiceOption"]:
        """Case-insensitive lookup; ``None`` for voices outside the built-in set."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None


class ImageSizeOption(str, Enum):
    """Image sizes accepted by the image generation endpoint."""

    AUTO = "auto"
    SQUARE = "1024x1024"
    PORTRAIT = "1024x1536"
    LANDSCAPE = "1536x1024"

    @property
    def display_name(self) -> str:
        return _IMAGE_SIZE_LABELS[self]


_IMAGE_SIZE_LABELS = {
    ImageSizeOption.AUTO: "Auto",
    ImageSizeOption.SQUARE: "Square (1024×1024)",
    ImageSizeOption.PORTRAIT: "Portrait (1024×1536)",
    ImageSizeOption.LANDSCAPE: "Landscape (1536×1024)",
}
