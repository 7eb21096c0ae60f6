"""Generation session controller."""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from sticker_bot import messages
from sticker_bot.adapters.telegram_client import TelegramClient
from sticker_bot.domain.errors import (
    ContainerInvalidError,
    FaceDetectionError,
    InsufficientOutputError,
    ValidationError,
    error_kind,
)
from sticker_bot.domain.generation import (
    GenerationReport,
    GenerationSession,
    GenerationState,
    PackResult,
    ProgressCounts,
    TemplateOutcome,
)
from sticker_bot.domain.templates import Template
from sticker_bot.services.assembler import PackAssembler
from sticker_bot.services.batches import TemplateBatchOrchestrator
from sticker_bot.services.images import ImageNormalizer
from sticker_bot.services.sessions import GenerationSessionStore
from sticker_bot.services.usage import UsageService

_logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 64
PIPELINE_TIMEOUT_KIND = "pipeline_timeout"
UPLOAD_PHOTO_ACTION = "upload_photo"


@dataclass
class ChatProgressSink:
    """Queue progress messages for a chat and send them in the background."""

    telegram_client: TelegramClient
    chat_id: int
    _pending: list[asyncio.Task[None]] = field(default_factory=list)

    def on_progress(self, percent: int, counts: ProgressCounts) -> None:
        """Schedule a progress message."""
        self._pending.append(
            asyncio.get_running_loop().create_task(
                _notify(
                    self.telegram_client,
                    self.chat_id,
                    messages.progress_text(percent, counts),
                )
            )
        )

    async def drain(self) -> None:
        """Wait for every queued progress message."""
        pending, self._pending = self._pending, []
        if pending:
            await asyncio.gather(*pending)


async def _notify(telegram_client: TelegramClient, chat_id: int, text: str) -> None:
    try:
        await telegram_client.send_message(chat_id=chat_id, text=text)
    except Exception:
        _logger.exception("Failed to send Telegram message", extra={"chat_id": chat_id})


async def _show_action(
    telegram_client: TelegramClient, chat_id: int, action: str
) -> None:
    try:
        await telegram_client.send_chat_action(chat_id, action)
    except Exception:  # noqa: BLE001
        _logger.warning(
            "Failed to send chat action", extra={"chat_id": chat_id, "action": action}
        )


@dataclass
class GenerationController:
    """Drive one photo through normalization, face swap and pack assembly."""

    telegram_client: TelegramClient
    normalizer: ImageNormalizer
    orchestrator: TemplateBatchOrchestrator
    assembler: PackAssembler
    usage_service: UsageService
    session_store: GenerationSessionStore
    templates: Sequence[Template]
    batch_size: int = 3
    max_pack_attempts: int = 3
    pipeline_timeout_seconds: float = 600.0
    pack_title_prefix: str = "New People Stickers"
    clock: Callable[[], float] = field(default=time.monotonic)

    async def handle_photo(
        self,
        chat_id: int,
        user_id: int,
        file_id: str,
        first_name: str | None = None,
    ) -> GenerationReport | None:
        """Generate a sticker pack for a photo.

        Returns None when the photo was refused because a run is already in
        progress for the chat or the daily limit is reached.
        """
        session = await self.session_store.begin(chat_id, user_id)
        if session is None:
            await _notify(self.telegram_client, chat_id, messages.IN_PROGRESS_TEXT)
            return None

        if not self.usage_service.check_daily_limit(user_id):
            await self.session_store.release(chat_id)
            await _notify(self.telegram_client, chat_id, messages.DAILY_LIMIT_TEXT)
            return None

        try:
            return await self._generate(session, file_id, first_name)
        finally:
            await self.session_store.release(chat_id)

    async def _generate(
        self, session: GenerationSession, file_id: str, first_name: str | None
    ) -> GenerationReport:
        chat_id, user_id = session.chat_id, session.user_id
        started = self.clock()
        sink = ChatProgressSink(self.telegram_client, chat_id)
        outcomes: list[TemplateOutcome] = []
        await _notify(self.telegram_client, chat_id, messages.PHOTO_RECEIVED_TEXT)
        self.usage_service.log_event(user_id, "started", {"file_id": file_id})
        _logger.info(
            "Generation started",
            extra={"user_id": user_id, "chat_id": chat_id},
        )

        pack: PackResult | None = None
        failure: Exception | None = None
        try:
            pack = await asyncio.wait_for(
                self._run_pipeline(session, file_id, first_name, sink, outcomes),
                timeout=self.pipeline_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            failure = exc
        await sink.drain()

        duration = round(self.clock() - started, 2)
        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        failed = len(outcomes) - succeeded
        if pack is not None:
            state = GenerationState.COMPLETED
            kind = None
        else:
            state = GenerationState.ERROR
            kind = (
                PIPELINE_TIMEOUT_KIND
                if isinstance(failure, TimeoutError)
                else error_kind(failure)
            )
        await self.session_store.finish(chat_id, state)

        report = GenerationReport(
            state=state,
            duration_seconds=duration,
            succeeded=succeeded,
            failed=failed,
            pack=pack,
            error_kind=kind,
        )
        self._log_report(session, report, failure)
        self.usage_service.record_generation(
            user_id,
            completed=pack is not None,
            details={
                "duration_seconds": duration,
                "succeeded": succeeded,
                "failed": failed,
                "error_kind": kind,
                "pack_name": pack.pack_name if pack else None,
            },
        )
        if pack is not None:
            await _notify(self.telegram_client, chat_id, messages.pack_ready_text(pack))
        else:
            await _notify(self.telegram_client, chat_id, _failure_text(failure))
        return report

    async def _run_pipeline(
        self,
        session: GenerationSession,
        file_id: str,
        first_name: str | None,
        sink: ChatProgressSink,
        outcomes: list[TemplateOutcome],
    ) -> PackResult:
        image = await self.normalizer.normalize(file_id)
        await _notify(
            self.telegram_client,
            session.chat_id,
            messages.processing_started_text(len(self.templates)),
        )
        await _show_action(self.telegram_client, session.chat_id, UPLOAD_PHOTO_ACTION)
        outcomes.extend(
            await self.orchestrator.run(self.templates, image, self.batch_size, sink)
        )
        await sink.drain()
        await _notify(
            self.telegram_client, session.chat_id, messages.CREATING_PACK_TEXT
        )
        return await self._assemble(session.user_id, outcomes, first_name)

    async def _assemble(
        self,
        user_id: int,
        outcomes: list[TemplateOutcome],
        first_name: str | None,
    ) -> PackResult:
        title = _pack_title(self.pack_title_prefix, first_name)
        last_error: ContainerInvalidError | None = None
        for attempt in range(1, self.max_pack_attempts + 1):
            try:
                return await self.assembler.assemble(user_id, outcomes, title, attempt)
            except ContainerInvalidError as exc:
                last_error = exc
                _logger.warning(
                    "Sticker set invalid, recreating",
                    extra={
                        "user_id": user_id,
                        "pack_name": exc.pack_name,
                        "attempt": attempt,
                    },
                )
        raise last_error or ContainerInvalidError("", "no assembly attempted")

    def _log_report(
        self,
        session: GenerationSession,
        report: GenerationReport,
        failure: Exception | None,
    ) -> None:
        extra = {
            "user_id": session.user_id,
            "chat_id": session.chat_id,
            "state": report.state.value,
            "duration": report.duration_seconds,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "error_kind": report.error_kind,
        }
        if failure is None:
            _logger.info("Generation completed", extra=extra)
        elif isinstance(failure, (ValidationError, InsufficientOutputError)):
            _logger.warning("Generation rejected: %s", failure, extra=extra)
        else:
            _logger.error(
                "Generation failed",
                exc_info=(type(failure), failure, failure.__traceback__),
                extra=extra,
            )


def _pack_title(prefix: str, first_name: str | None) -> str:
    title = f"{first_name} - {prefix}" if first_name else prefix
    return title[:MAX_TITLE_LENGTH]


def _failure_text(failure: Exception | None) -> str:
    if isinstance(failure, ValidationError):
        return messages.INVALID_PHOTO_TEXT
    if isinstance(failure, FaceDetectionError):
        return messages.NO_FACE_TEXT
    if isinstance(failure, InsufficientOutputError):
        return messages.insufficient_output_text(failure.succeeded, failure.required)
    return messages.PROCESSING_ERROR_TEXT
