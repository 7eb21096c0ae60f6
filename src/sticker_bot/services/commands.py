"""Command handlers for Telegram updates."""

from dataclasses import dataclass

from sticker_bot import messages
from sticker_bot.adapters.telegram_client import TelegramClient


@dataclass
class StartCommandHandler:
    """Handle the /start Telegram command."""

    telegram_client: TelegramClient

    async def handle(self, chat_id: int, first_name: str | None = None) -> None:
        """Send the welcome message."""
        await self.telegram_client.send_message(
            chat_id=chat_id, text=messages.welcome_text(first_name)
        )


@dataclass
class HelpCommandHandler:
    """Handle the /help Telegram command."""

    telegram_client: TelegramClient

    async def handle(self, chat_id: int) -> None:
        await self.telegram_client.send_message(
            chat_id=chat_id, text=messages.HELP_TEXT
        )
