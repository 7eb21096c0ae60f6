"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request

from sticker_bot import messages
from sticker_bot.api.telegram_models import (
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from sticker_bot.app_logging import configure_logging
from sticker_bot.containers import AppContainer
from sticker_bot.telegram_commands import (
    CHAT_MENU_BUTTON,
    BotCommand,
    telegram_commands,
)

IMAGE_DOCUMENT_TYPES = frozenset({"image/jpeg", "image/png"})


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.telegram_client.set_my_commands(
                telegram_commands()
            )
            await app.state.container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    async def run_generation(
        state_container: AppContainer, message: TelegramMessage, file_id: str
    ) -> None:
        try:
            await state_container.generation_controller.handle_photo(
                chat_id=message.chat.id,
                user_id=message.from_user.id,
                file_id=file_id,
                first_name=message.from_user.first_name,
            )
        except Exception:
            logger.exception(
                "Generation crashed",
                extra={"chat_id": message.chat.id, "user_id": message.from_user.id},
            )

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        update: TelegramUpdate, request: Request, background_tasks: BackgroundTasks
    ) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        message = update.message
        if message is None:
            return {"status": "ok"}

        command = _parse_command(message.text)
        if command == BotCommand.START.value.command:
            await state_container.start_command_handler.handle(
                message.chat.id, message.from_user.first_name
            )
            return {"status": "ok"}
        if command == BotCommand.HELP.value.command:
            await state_container.help_command_handler.handle(message.chat.id)
            return {"status": "ok"}

        file_id = _extract_image_file_id(message)
        if file_id is None:
            await state_container.telegram_client.send_message(
                chat_id=message.chat.id, text=messages.SEND_PHOTO_TEXT
            )
            return {"status": "ok"}

        logger.info(
            "Photo received",
            extra={"chat_id": message.chat.id, "user_id": message.from_user.id},
        )
        background_tasks.add_task(run_generation, state_container, message, file_id)
        return {"status": "ok"}

    return app


def _parse_command(text: str | None) -> str | None:
    """Return the bot command name without slash or @botname suffix."""
    if not text or not text.startswith("/"):
        return None
    return text.split()[0][1:].split("@", 1)[0].lower()


def _select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def _extract_image_file_id(message: TelegramMessage) -> str | None:
    if message.photo:
        return _select_largest_photo(message.photo).file_id
    document = message.document
    if document and document.mime_type in IMAGE_DOCUMENT_TYPES:
        return document.file_id
    return None
