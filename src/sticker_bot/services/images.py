"""Source photo download, validation and sticker encoding."""

import asyncio
import base64
import io
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx
from PIL import Image, UnidentifiedImageError

from sticker_bot.adapters.telegram_file_client import TelegramFileClient
from sticker_bot.domain.errors import DownloadError, NetworkError, ValidationError
from sticker_bot.domain.images import ImageMetadata, NormalizedImage

_logger = logging.getLogger(__name__)

ACCEPTED_FORMATS = frozenset({"JPEG", "PNG"})
STICKER_FORMAT = "WEBP"
QUALITY_STEP = 10
MIN_QUALITY = 50
MAX_ENCODE_ATTEMPTS = 5


def inspect_image(data: bytes) -> ImageMetadata:
    """Decode image headers and return basic metadata."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return ImageMetadata(
                format=image.format,
                width=image.width,
                height=image.height,
                byte_size=len(data),
            )
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Unsupported or corrupt image data") from exc


def encode_webp(image: Image.Image, quality: int) -> bytes:
    """Encode a Pillow image as WEBP."""
    buffer = io.BytesIO()
    image.save(buffer, format=STICKER_FORMAT, quality=quality, method=4)
    return buffer.getvalue()


def to_data_url(image: NormalizedImage) -> str:
    """Convert a normalized image to a base64 data URL."""
    encoded = base64.b64encode(image.data).decode("utf-8")
    return f"data:image/{image.format.lower()};base64,{encoded}"


@dataclass
class ImageNormalizer:
    """Turn a Telegram photo into a sticker-sized WEBP image."""

    file_client: TelegramFileClient
    max_bytes: int = 10 * 1024 * 1024
    min_side: int = 100
    max_aspect_ratio: float = 3.0
    sticker_max_side: int = 512
    target_bytes: int = 500 * 1024
    quality: int = 85
    download_attempts: int = 3
    backoff_seconds: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def normalize(self, file_id: str) -> NormalizedImage:
        """Download, validate and re-encode a source photo."""
        data = await self.download(file_id)
        self.validate(data)
        normalized = await asyncio.to_thread(self.prepare_sticker, data)
        _logger.info(
            "Normalized source photo",
            extra={
                "file_id": file_id,
                "width": normalized.width,
                "height": normalized.height,
                "quality": normalized.quality,
                "byte_size": len(normalized.data),
            },
        )
        return normalized

    async def download(self, file_id: str) -> bytes:
        """Download photo bytes, retrying transport failures with backoff."""
        last_error: Exception | None = None
        for attempt in range(1, self.download_attempts + 1):
            try:
                return await self.file_client.download_file_bytes(
                    file_id, max_bytes=self.max_bytes
                )
            except ValidationError:
                raise
            except (httpx.HTTPError, NetworkError, DownloadError) as exc:
                last_error = exc
                _logger.warning(
                    "Photo download attempt failed",
                    extra={"file_id": file_id, "attempt": attempt},
                )
                if attempt < self.download_attempts:
                    await self.sleep(self.backoff_seconds * 2 ** (attempt - 1))
        raise DownloadError(
            f"Failed to download photo after {self.download_attempts} attempts: "
            f"{last_error}"
        ) from last_error

    def validate(self, data: bytes) -> ImageMetadata:
        """Check format, size, dimensions and aspect ratio.

        Every violated rule is reported in one ValidationError.
        """
        if not data:
            raise ValidationError("Image is empty")
        metadata = inspect_image(data)
        violations: list[str] = []
        if metadata.format not in ACCEPTED_FORMATS:
            violations.append(f"Unsupported format: {metadata.format or 'unknown'}")
        if metadata.byte_size > self.max_bytes:
            violations.append(
                f"File too large: {metadata.byte_size} bytes (max {self.max_bytes})"
            )
        if metadata.width < self.min_side or metadata.height < self.min_side:
            violations.append(
                f"Image too small: {metadata.width}x{metadata.height} "
                f"(min {self.min_side}x{self.min_side})"
            )
        ratio = max(metadata.width, metadata.height) / max(
            min(metadata.width, metadata.height), 1
        )
        if ratio > self.max_aspect_ratio:
            violations.append(
                f"Aspect ratio too extreme: {ratio:.2f} (max {self.max_aspect_ratio})"
            )
        if violations:
            raise ValidationError(violations)
        return metadata

    def prepare_sticker(self, data: bytes) -> NormalizedImage:
        """Fit the image into the sticker square and encode it as WEBP."""
        try:
            with Image.open(io.BytesIO(data)) as source:
                image = source.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise ValidationError("Unsupported or corrupt image data") from exc

        if max(image.size) > self.sticker_max_side:
            bounds = (self.sticker_max_side, self.sticker_max_side)
            image.thumbnail(bounds, Image.LANCZOS)

        quality = self.quality
        smallest: tuple[bytes, int] | None = None
        for _ in range(MAX_ENCODE_ATTEMPTS):
            encoded = encode_webp(image, quality)
            if smallest is None or len(encoded) < len(smallest[0]):
                smallest = (encoded, quality)
            if len(encoded) <= self.target_bytes or quality <= MIN_QUALITY:
                break
            quality = max(quality - QUALITY_STEP, MIN_QUALITY)

        encoded, used_quality = smallest
        return NormalizedImage(
            data=encoded,
            width=image.width,
            height=image.height,
            format=STICKER_FORMAT,
            quality=used_quality,
            within_target_size=len(encoded) <= self.target_bytes,
        )
