"""Sticker set assembly with partial-failure recovery."""

import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from sticker_bot.adapters.telegram_sticker_client import (
    StickerSetClient,
    input_sticker,
)
from sticker_bot.domain.errors import (
    ContainerInvalidError,
    InsufficientOutputError,
    NetworkError,
    StickerSetApiError,
)
from sticker_bot.domain.generation import (
    FailedAppend,
    PackAssembly,
    PackResult,
    TemplateOutcome,
)

_logger = logging.getLogger(__name__)

PACK_NAME_PREFIX = "newpeople"
FALLBACK_EMOJIS = ("😀", "😊", "🙂", "😉", "👍")
APPEND_STRATEGIES = ("uploaded_file_id", "inline_attachment")
INLINE_ATTACHMENT_FIELD = "sticker_file"
CONTAINER_INVALID_MARKERS = (
    "stickerset_invalid",
    "stickerset_not_found",
    "sticker set not found",
)
MAX_INVALID_SIGNALS = 2

STICKER_ERRORS = (StickerSetApiError, NetworkError)


def is_container_invalid_error(exc: Exception) -> bool:
    """Return true when Telegram reports the sticker set itself as unusable."""
    if not isinstance(exc, StickerSetApiError):
        return False
    description = exc.description.lower()
    return any(marker in description for marker in CONTAINER_INVALID_MARKERS)


def build_pack_name(
    owner_user_id: int,
    bot_username: str,
    attempt: int = 1,
    timestamp_ms: int | None = None,
    suffix: str | None = None,
) -> str:
    """Build a unique sticker set name ending in ``_by_<bot>``."""
    stamp = str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000))
    suffix = suffix or secrets.token_hex(3)
    retry = f"_r{attempt}" if attempt > 1 else ""
    return (
        f"{PACK_NAME_PREFIX}_{owner_user_id}_{stamp[-8:]}_{suffix}{retry}"
        f"_by_{bot_username}"
    )


@dataclass
class _PendingSticker:
    outcome: TemplateOutcome
    file_id: str | None


@dataclass
class PackAssembler:
    """Upload outputs and append them, in order, to a new sticker set."""

    client: StickerSetClient
    bot_username: str
    min_successful_stickers: int = 5
    append_delay_seconds: float = 0.3
    retry_delay_seconds: float = 1.0
    fallback_emojis: tuple[str, ...] = FALLBACK_EMOJIS
    strategies: tuple[str, ...] = APPEND_STRATEGIES
    is_container_invalid: Callable[[Exception], bool] = is_container_invalid_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    async def assemble(
        self,
        owner_user_id: int,
        outcomes: Sequence[TemplateOutcome],
        title: str,
        attempt: int = 1,
    ) -> PackResult:
        """Create a sticker set from successful outcomes.

        Raises InsufficientOutputError before any remote call when too few
        outcomes succeeded, and ContainerInvalidError when the set must be
        recreated under a new name.
        """
        successes = [
            outcome
            for outcome in outcomes
            if outcome.succeeded and outcome.output_bytes
        ]
        if len(successes) < self.min_successful_stickers:
            raise InsufficientOutputError(len(successes), self.min_successful_stickers)

        assembly = PackAssembly(
            pack_name=build_pack_name(owner_user_id, self.bot_username, attempt),
            owner_user_id=owner_user_id,
        )
        pending = [await self._upload(assembly, outcome) for outcome in successes]
        await self._seed(assembly, pending[0], title)

        for item in pending[1:]:
            await self.sleep(self.append_delay_seconds)
            try:
                await self._append(assembly, item, item.outcome.emoji)
            except STICKER_ERRORS as exc:
                self._record_failure(assembly, item, exc)
            else:
                assembly.appended_count += 1

        await self._retry_failed(assembly, pending)
        return await self._verify(assembly, requested_count=len(successes))

    async def _upload(
        self, assembly: PackAssembly, outcome: TemplateOutcome
    ) -> _PendingSticker:
        try:
            file_id = await self.client.upload_sticker_file(
                assembly.owner_user_id, outcome.output_bytes or b""
            )
        except STICKER_ERRORS as exc:
            _logger.warning(
                "Sticker upload failed",
                extra={
                    "user_id": assembly.owner_user_id,
                    "template_id": outcome.template_id,
                    "error": str(exc),
                },
            )
            file_id = None
        return _PendingSticker(outcome=outcome, file_id=file_id)

    async def _seed(
        self, assembly: PackAssembly, seed: _PendingSticker, title: str
    ) -> None:
        last_error: Exception | None = None
        for strategy in self.strategies:
            request = self._build_request(strategy, seed, seed.outcome.emoji)
            if request is None:
                continue
            sticker, files = request
            try:
                await self.client.create_new_sticker_set(
                    assembly.owner_user_id, assembly.pack_name, title, sticker, files
                )
                break
            except STICKER_ERRORS as exc:
                last_error = exc
                _logger.warning(
                    "Sticker set creation failed",
                    extra={
                        "pack_name": assembly.pack_name,
                        "strategy": strategy,
                        "error": str(exc),
                    },
                )
        else:
            raise ContainerInvalidError(
                assembly.pack_name, str(last_error or "no seed strategy applies")
            ) from last_error
        assembly.appended_count = 1
        _logger.info("Sticker set created", extra={"pack_name": assembly.pack_name})

    async def _append(
        self, assembly: PackAssembly, item: _PendingSticker, emoji: str
    ) -> None:
        last_error: Exception | None = None
        for strategy in self.strategies:
            request = self._build_request(strategy, item, emoji)
            if request is None:
                continue
            sticker, files = request
            try:
                await self.client.add_sticker_to_set(
                    assembly.owner_user_id, assembly.pack_name, sticker, files
                )
                return
            except STICKER_ERRORS as exc:
                if self.is_container_invalid(exc):
                    raise
                last_error = exc
                _logger.debug(
                    "Append strategy failed",
                    extra={"strategy": strategy, "error": str(exc)},
                )
        raise last_error or StickerSetApiError("No append strategy applies")

    def _build_request(
        self, strategy: str, item: _PendingSticker, emoji: str
    ) -> tuple[dict[str, object], dict[str, bytes] | None] | None:
        if strategy == "uploaded_file_id":
            if not item.file_id:
                return None
            return input_sticker(item.file_id, emoji), None
        if strategy == "inline_attachment":
            return (
                input_sticker(f"attach://{INLINE_ATTACHMENT_FIELD}", emoji),
                {INLINE_ATTACHMENT_FIELD: item.outcome.output_bytes or b""},
            )
        raise ValueError(f"Unknown append strategy: {strategy}")

    def _record_failure(
        self, assembly: PackAssembly, item: _PendingSticker, exc: Exception
    ) -> None:
        if self.is_container_invalid(exc):
            assembly.invalid_attempts += 1
            if assembly.invalid_attempts >= MAX_INVALID_SIGNALS:
                raise ContainerInvalidError(assembly.pack_name, str(exc)) from exc
        _logger.warning(
            "Sticker append failed",
            extra={
                "pack_name": assembly.pack_name,
                "template_id": item.outcome.template_id,
                "error": str(exc),
            },
        )
        assembly.failed_appends.append(FailedAppend(item.outcome, str(exc)))

    async def _retry_failed(
        self, assembly: PackAssembly, pending: list[_PendingSticker]
    ) -> None:
        by_template = {item.outcome.template_id: item for item in pending}
        for failed in list(assembly.failed_appends):
            item = by_template[failed.outcome.template_id]
            for emoji in self.fallback_emojis:
                if emoji == item.outcome.emoji:
                    continue
                await self.sleep(self.retry_delay_seconds)
                try:
                    await self._append(assembly, item, emoji)
                except STICKER_ERRORS as exc:
                    if self.is_container_invalid(exc):
                        assembly.invalid_attempts += 1
                        if assembly.invalid_attempts >= MAX_INVALID_SIGNALS:
                            raise ContainerInvalidError(
                                assembly.pack_name, str(exc)
                            ) from exc
                    continue
                assembly.appended_count += 1
                assembly.failed_appends.remove(failed)
                _logger.info(
                    "Sticker appended with substitute emoji",
                    extra={
                        "template_id": item.outcome.template_id,
                        "emoji": emoji,
                    },
                )
                break

    async def _verify(
        self, assembly: PackAssembly, requested_count: int
    ) -> PackResult:
        actual_count = assembly.appended_count
        try:
            sticker_set = await self.client.get_sticker_set(assembly.pack_name)
            stickers = sticker_set.get("stickers")
            if isinstance(stickers, list):
                actual_count = len(stickers)
        except STICKER_ERRORS:
            _logger.warning(
                "Could not read back sticker set",
                exc_info=True,
                extra={"pack_name": assembly.pack_name},
            )
        if actual_count != assembly.appended_count:
            _logger.warning(
                "Sticker count mismatch",
                extra={
                    "pack_name": assembly.pack_name,
                    "appended": assembly.appended_count,
                    "actual": actual_count,
                },
            )
        return PackResult(
            pack_name=assembly.pack_name,
            share_url=self.client.sticker_set_url(assembly.pack_name),
            requested_count=requested_count,
            actual_count=actual_count,
            failed_count=len(assembly.failed_appends),
        )
