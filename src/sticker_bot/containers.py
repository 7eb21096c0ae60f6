"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from sticker_bot.adapters.piapi_client import HttpxPiapiClient
from sticker_bot.adapters.supabase_usage_repository import SupabaseUsageRepository
from sticker_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from sticker_bot.adapters.telegram_file_client import HttpxTelegramFileClient
from sticker_bot.adapters.telegram_sticker_client import HttpxStickerSetClient
from sticker_bot.config import Settings
from sticker_bot.domain.templates import Template
from sticker_bot.services.assembler import PackAssembler
from sticker_bot.services.batches import TemplateBatchOrchestrator
from sticker_bot.services.commands import HelpCommandHandler, StartCommandHandler
from sticker_bot.services.face_swap import FaceSwapService
from sticker_bot.services.fallback import FallbackSynthesizer
from sticker_bot.services.generation import GenerationController
from sticker_bot.services.images import ImageNormalizer
from sticker_bot.services.sessions import GenerationSessionStore
from sticker_bot.services.usage import UsageService
from sticker_bot.templates import load_templates

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    templates: list[Template]
    start_command_handler: StartCommandHandler
    help_command_handler: HelpCommandHandler
    generation_controller: GenerationController
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    templates = load_templates()

    usage_repository = None
    if resolved_settings.usage_store_configured:
        usage_repository = SupabaseUsageRepository(
            create_client(
                resolved_settings.supabase_url, resolved_settings.supabase_service_key
            )
        )
    else:
        _logger.warning("Supabase is not configured, daily limits are disabled")

    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token
    )
    sticker_client = HttpxStickerSetClient.create(resolved_settings.telegram_bot_token)

    piapi_client = None
    face_swap_service = None
    if resolved_settings.synthesis_configured:
        piapi_client = HttpxPiapiClient.create(
            api_key=resolved_settings.piapi_api_key,
            base_url=resolved_settings.piapi_base_url,
        )
        face_swap_service = FaceSwapService(
            client=piapi_client,
            submit_attempts=resolved_settings.submit_attempts,
            max_poll_failures=resolved_settings.max_poll_failures,
        )
    else:
        _logger.warning("PiAPI is not configured, using fallback stickers only")

    normalizer = ImageNormalizer(
        file_client=telegram_file_client,
        max_bytes=resolved_settings.max_photo_bytes,
        min_side=resolved_settings.min_photo_side,
        max_aspect_ratio=resolved_settings.max_aspect_ratio,
        sticker_max_side=resolved_settings.sticker_max_side,
        target_bytes=resolved_settings.sticker_target_bytes,
        quality=resolved_settings.sticker_quality,
        download_attempts=resolved_settings.download_attempts,
    )
    orchestrator = TemplateBatchOrchestrator(
        normalizer=normalizer,
        fallback=FallbackSynthesizer(),
        face_swap=face_swap_service,
        template_timeout_seconds=resolved_settings.template_timeout_seconds,
        template_attempts=resolved_settings.template_attempts,
        continue_on_error=resolved_settings.continue_on_error,
        fallback_enabled=resolved_settings.fallback_enabled,
        job_max_wait_seconds=resolved_settings.job_max_wait_seconds,
        job_poll_interval_seconds=resolved_settings.job_poll_interval_seconds,
        face_swap_options=dict(resolved_settings.face_swap_options),
    )
    assembler = PackAssembler(
        client=sticker_client,
        bot_username=resolved_settings.telegram_bot_username,
        min_successful_stickers=resolved_settings.min_successful_stickers,
        append_delay_seconds=resolved_settings.append_delay_seconds,
        retry_delay_seconds=resolved_settings.retry_delay_seconds,
    )
    generation_controller = GenerationController(
        telegram_client=telegram_client,
        normalizer=normalizer,
        orchestrator=orchestrator,
        assembler=assembler,
        usage_service=UsageService(
            repository=usage_repository, daily_limit=resolved_settings.daily_limit
        ),
        session_store=GenerationSessionStore(),
        templates=templates,
        batch_size=resolved_settings.batch_size,
        max_pack_attempts=resolved_settings.max_pack_attempts,
        pipeline_timeout_seconds=resolved_settings.pipeline_timeout_seconds,
        pack_title_prefix=resolved_settings.pack_title_prefix,
    )

    async def close_resources() -> None:
        await telegram_client.close()
        await telegram_file_client.close()
        await sticker_client.close()
        if piapi_client is not None:
            await piapi_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        templates=templates,
        start_command_handler=StartCommandHandler(telegram_client),
        help_command_handler=HelpCommandHandler(telegram_client),
        generation_controller=generation_controller,
        close_resources=close_resources,
    )
