"""Domain model for sticker templates."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Template:
    """A visual theme the user's face is composited into."""

    id: str
    display_name: str
    emoji: str
    source_image_url: str
    description: str
