"""Models for normalized images."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ImageMetadata:
    """Basic facts about a decoded image."""

    format: str | None
    width: int
    height: int
    byte_size: int


@dataclass(frozen=True)
class NormalizedImage:
    """Image re-encoded to sticker constraints."""

    data: bytes
    width: int
    height: int
    format: str
    quality: int
    within_target_size: bool
