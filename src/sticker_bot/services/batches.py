"""Bounded-concurrency template processing."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from sticker_bot.domain.errors import (
    ConfigurationError,
    NetworkError,
    TaskFailedError,
    TaskTimeoutError,
    ValidationError,
    error_kind,
)
from sticker_bot.domain.generation import OutcomeStatus, ProgressCounts, TemplateOutcome
from sticker_bot.domain.images import NormalizedImage
from sticker_bot.domain.templates import Template
from sticker_bot.services.face_swap import FaceSwapService
from sticker_bot.services.fallback import FallbackSynthesizer
from sticker_bot.services.images import ImageNormalizer, to_data_url

_logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (TaskFailedError, TaskTimeoutError, NetworkError)
PROGRESS_MILESTONE = 25


class ProgressSink(Protocol):
    """Receives progress after each batch."""

    def on_progress(self, percent: int, counts: ProgressCounts) -> None:
        """Handle a progress notification."""


@dataclass
class TemplateBatchOrchestrator:
    """Run every template through face swap in sequential batches."""

    normalizer: ImageNormalizer
    fallback: FallbackSynthesizer
    face_swap: FaceSwapService | None = None
    template_timeout_seconds: float = 60.0
    template_attempts: int = 2
    continue_on_error: bool = True
    fallback_enabled: bool = True
    job_max_wait_seconds: float = 55.0
    job_poll_interval_seconds: float = 2.0
    face_swap_options: dict[str, object] = field(default_factory=dict)

    async def run(
        self,
        templates: Sequence[Template],
        image: NormalizedImage,
        batch_size: int,
        progress_sink: ProgressSink | None = None,
    ) -> list[TemplateOutcome]:
        """Process templates and return one outcome per template, in order."""
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {batch_size}")
        source_url = to_data_url(image)
        total = len(templates)
        outcomes: list[TemplateOutcome] = []
        last_milestone = 0
        for start in range(0, total, batch_size):
            batch = templates[start : start + batch_size]
            results = await asyncio.gather(
                *(self._process(template, image, source_url) for template in batch),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            outcomes.extend(results)

            percent = len(outcomes) * 100 // total
            milestone = percent // PROGRESS_MILESTONE
            is_last = len(outcomes) == total
            if progress_sink is not None and (milestone > last_milestone or is_last):
                last_milestone = milestone
                succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
                progress_sink.on_progress(
                    percent,
                    ProgressCounts(
                        processed=len(outcomes),
                        succeeded=succeeded,
                        failed=len(outcomes) - succeeded,
                        total=total,
                    ),
                )
        return outcomes

    async def _process(
        self, template: Template, image: NormalizedImage, source_url: str
    ) -> TemplateOutcome:
        if self.face_swap is None:
            return await self._fallback_outcome(
                template, image, ConfigurationError.error_kind
            )

        started = time.monotonic()
        last_error: Exception | None = None
        for attempt in range(1, self.template_attempts + 1):
            try:
                output = await asyncio.wait_for(
                    self._swap(template, source_url),
                    timeout=self.template_timeout_seconds,
                )
            except TimeoutError:
                last_error = TaskTimeoutError(
                    f"Template {template.id} exceeded "
                    f"{self.template_timeout_seconds}s",
                    detail=template.id,
                )
            except RETRYABLE_ERRORS as exc:
                last_error = exc
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                _logger.warning(
                    "Template failed without retry",
                    extra={"template_id": template.id, "error_kind": error_kind(exc)},
                )
                break
            else:
                return TemplateOutcome(
                    template_id=template.id,
                    emoji=template.emoji,
                    status=OutcomeStatus.SUCCESS,
                    output_bytes=output,
                )
            _logger.warning(
                "Template attempt failed",
                extra={
                    "template_id": template.id,
                    "attempt": attempt,
                    "error_kind": error_kind(last_error),
                },
            )

        _logger.error(
            "Template failed",
            extra={
                "template_id": template.id,
                "error_kind": error_kind(last_error),
                "duration": round(time.monotonic() - started, 2),
            },
        )
        if not self.continue_on_error:
            raise last_error
        return await self._fallback_outcome(template, image, error_kind(last_error))

    async def _swap(self, template: Template, source_url: str) -> bytes:
        output = await self.face_swap.swap_face(
            template.source_image_url,
            source_url,
            max_wait=self.job_max_wait_seconds,
            poll_interval=self.job_poll_interval_seconds,
            options=self.face_swap_options,
        )
        try:
            normalized = await asyncio.to_thread(
                self.normalizer.prepare_sticker, output
            )
        except ValidationError as exc:
            raise TaskFailedError(
                "Face swap output is not a decodable image", detail=template.id
            ) from exc
        return normalized.data

    async def _fallback_outcome(
        self, template: Template, image: NormalizedImage, cause: str
    ) -> TemplateOutcome:
        if not self.fallback_enabled:
            return TemplateOutcome(
                template_id=template.id,
                emoji=template.emoji,
                status=OutcomeStatus.FAILED,
                error_kind=cause,
            )
        try:
            output = await asyncio.to_thread(self.fallback.synthesize, template, image)
        except Exception as exc:  # noqa: BLE001
            _logger.exception(
                "Fallback synthesis failed", extra={"template_id": template.id}
            )
            return TemplateOutcome(
                template_id=template.id,
                emoji=template.emoji,
                status=OutcomeStatus.FAILED,
                error_kind=error_kind(exc),
            )
        return TemplateOutcome(
            template_id=template.id,
            emoji=template.emoji,
            status=OutcomeStatus.SUCCESS,
            output_bytes=output,
            error_kind=cause,
            used_fallback=True,
        )
