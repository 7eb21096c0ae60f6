"""Telegram file download client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from sticker_bot.domain.errors import DownloadError, ValidationError


class TelegramFileClient(Protocol):
    """Interface for downloading Telegram files."""

    async def download_file_bytes(
        self, file_id: str, max_bytes: int | None = None
    ) -> bytes:
        """Download a Telegram file and return its bytes."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Telegram file client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30.0

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramFileClient":
        """Create a Telegram file client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def download_file_bytes(
        self, file_id: str, max_bytes: int | None = None
    ) -> bytes:
        """Download Telegram file bytes via getFile.

        Raises ValidationError as soon as the body grows past ``max_bytes``.
        """
        get_file_url = f"https://api.telegram.org/bot{self.bot_token}/getFile"
        response = await self.http_client.get(
            get_file_url, params={"file_id": file_id}, timeout=10
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise DownloadError(
                f"Telegram getFile failed: {payload.get('description', 'unknown')}"
            )
        file_path = payload["result"]["file_path"]
        download_url = f"https://api.telegram.org/file/bot{self.bot_token}/{file_path}"
        chunks: list[bytes] = []
        received = 0
        async with self.http_client.stream(
            "GET", download_url, timeout=self.timeout_seconds
        ) as file_response:
            file_response.raise_for_status()
            async for chunk in file_response.aiter_bytes():
                received += len(chunk)
                if max_bytes is not None and received > max_bytes:
                    raise ValidationError(
                        f"File too large: more than {max_bytes} bytes"
                    )
                chunks.append(chunk)
        return b"".join(chunks)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
