"""Non-AI sticker synthesis."""

import io
from dataclasses import dataclass

from PIL import Image

from sticker_bot.domain.images import NormalizedImage
from sticker_bot.domain.templates import Template
from sticker_bot.services.images import encode_webp

FALLBACK_QUALITY = 80


@dataclass
class FallbackSynthesizer:
    """Produce a sticker from the user's photo alone."""

    quality: int = FALLBACK_QUALITY

    def synthesize(self, template: Template, image: NormalizedImage) -> bytes:
        """Re-encode the normalized photo as a WEBP sticker for a template."""
        with Image.open(io.BytesIO(image.data)) as source:
            return encode_webp(source.convert("RGBA"), self.quality)
