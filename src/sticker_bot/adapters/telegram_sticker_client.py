"""Telegram sticker set client adapter."""

import json
from dataclasses import dataclass
from typing import Protocol

import httpx

from sticker_bot.domain.errors import NetworkError, StickerSetApiError

STICKER_FORMAT = "static"


class StickerSetClient(Protocol):
    """Interface for Telegram sticker set methods."""

    async def upload_sticker_file(self, user_id: int, data: bytes) -> str:
        """Upload a WEBP sticker and return its Telegram file id."""

    async def create_new_sticker_set(
        self,
        user_id: int,
        name: str,
        title: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        """Create a sticker set seeded with one sticker."""

    async def add_sticker_to_set(
        self,
        user_id: int,
        name: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        """Append a sticker to an existing set."""

    async def get_sticker_set(self, name: str) -> dict[str, object]:
        """Return the sticker set payload."""

    def sticker_set_url(self, name: str) -> str:
        """Return the public share link of a sticker set."""


def _webp_multipart(
    files: dict[str, bytes] | None,
) -> dict[str, tuple[str, bytes, str]] | None:
    if not files:
        return None
    return {
        field_name: (f"{field_name}.webp", payload, "image/webp")
        for field_name, payload in files.items()
    }


def input_sticker(sticker: str, emoji: str) -> dict[str, object]:
    """Build an InputSticker payload."""
    return {"sticker": sticker, "emoji_list": [emoji], "format": STICKER_FORMAT}


@dataclass
class HttpxStickerSetClient(StickerSetClient):
    """Sticker set client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30.0

    @classmethod
    def create(cls, bot_token: str) -> "HttpxStickerSetClient":
        """Create a sticker set client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def upload_sticker_file(self, user_id: int, data: bytes) -> str:
        """Upload a sticker file via uploadStickerFile."""
        result = await self._call(
            "uploadStickerFile",
            {"user_id": str(user_id), "sticker_format": STICKER_FORMAT},
            files={"sticker": ("sticker.webp", data, "image/webp")},
        )
        if not isinstance(result, dict) or "file_id" not in result:
            raise StickerSetApiError("uploadStickerFile returned no file_id")
        return str(result["file_id"])

    async def create_new_sticker_set(
        self,
        user_id: int,
        name: str,
        title: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        """Create a sticker set via createNewStickerSet."""
        await self._call(
            "createNewStickerSet",
            {
                "user_id": str(user_id),
                "name": name,
                "title": title,
                "stickers": json.dumps([sticker]),
            },
            files=_webp_multipart(files),
        )

    async def add_sticker_to_set(
        self,
        user_id: int,
        name: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        """Append a sticker via addStickerToSet.

        ``files`` maps ``attach://`` names to raw WEBP bytes for inline uploads.
        """
        await self._call(
            "addStickerToSet",
            {"user_id": str(user_id), "name": name, "sticker": json.dumps(sticker)},
            files=_webp_multipart(files),
        )

    async def get_sticker_set(self, name: str) -> dict[str, object]:
        """Fetch a sticker set via getStickerSet."""
        result = await self._call("getStickerSet", {"name": name})
        if not isinstance(result, dict):
            raise StickerSetApiError("getStickerSet returned no result")
        return result

    def sticker_set_url(self, name: str) -> str:
        """Return the t.me share link."""
        return f"https://t.me/addstickers/{name}"

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _call(
        self,
        method: str,
        data: dict[str, str],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> object:
        url = f"https://api.telegram.org/bot{self.bot_token}/{method}"
        try:
            response = await self.http_client.post(
                url, data=data, files=files, timeout=self.timeout_seconds
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"Telegram {method} failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise StickerSetApiError(
                f"Telegram {method} returned a non-JSON response",
                status_code=response.status_code,
            ) from exc
        if not payload.get("ok"):
            raise StickerSetApiError(
                str(payload.get("description", f"Telegram {method} failed")),
                status_code=payload.get("error_code", response.status_code),
            )
        return payload.get("result")
