"""Face-swap job submission and polling."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx

from sticker_bot.adapters.piapi_client import SynthesisClient
from sticker_bot.domain.errors import (
    FaceDetectionError,
    NetworkError,
    SynthesisError,
    TaskFailedError,
    TaskTimeoutError,
    ValidationError,
)
from sticker_bot.domain.generation import JobHandle, JobStatus

_logger = logging.getLogger(__name__)

LOCATOR_SCHEMES = frozenset({"http", "https", "data"})
SUCCEEDED_STATUSES = frozenset({"completed", "success"})
FAILED_STATUSES = frozenset({"failed", "error"})
OUTPUT_URL_KEYS = ("image_url", "url", "output_url")

FACE_DETECTION_PHRASES = (
    "no face",
    "face not found",
    "cannot detect",
    "no faces detected",
    "face detection failed",
    "unable to detect face",
    "no human face",
    "face recognition",
    "низкая уверенность",
    "лицо не найдено",
    "лицо не обнаружено",
)
FACE_DETECTION_CODES = {
    "code": "FACE_NOT_DETECTED",
    "error_code": "NO_FACE",
    "type": "face_detection_error",
}


def is_image_locator(value: str) -> bool:
    """Return true for http(s) URLs with a host and for data URLs."""
    if value.startswith("data:"):
        return ";base64," in value
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError):
        return False
    return url.scheme in LOCATOR_SCHEMES and bool(url.host)


def is_face_detection_failure(detail: object) -> bool:
    """Match a job's error payload against known face-detection failures."""
    if isinstance(detail, dict):
        for key, code in FACE_DETECTION_CODES.items():
            if str(detail.get(key, "")).upper() == code.upper():
                return True
    text = " ".join(_collect_text(detail)).lower()
    return any(phrase in text for phrase in FACE_DETECTION_PHRASES)


def classify_failure(detail: object) -> SynthesisError:
    """Build the error for a job that ended in failure."""
    message = " ".join(_collect_text(detail)) or "Face swap task failed"
    if is_face_detection_failure(detail):
        return FaceDetectionError(message, detail=detail)
    return TaskFailedError(message, detail=detail)


def _collect_text(detail: object) -> list[str]:
    if detail is None:
        return []
    if isinstance(detail, str):
        return [detail] if detail else []
    if isinstance(detail, dict):
        return [text for value in detail.values() for text in _collect_text(value)]
    if isinstance(detail, (list, tuple)):
        return [text for value in detail for text in _collect_text(value)]
    return [str(detail)]


def _extract_result_url(output: object) -> str | None:
    if isinstance(output, str):
        return output or None
    if isinstance(output, dict):
        for key in OUTPUT_URL_KEYS:
            value = output.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _to_handle(task_id: str, data: dict[str, object]) -> JobHandle:
    raw_status = str(data.get("status", "")).lower()
    if raw_status in SUCCEEDED_STATUSES:
        status = JobStatus.SUCCEEDED
    elif raw_status in FAILED_STATUSES:
        status = JobStatus.FAILED
    else:
        status = JobStatus.PENDING
    progress = data.get("progress")
    error_detail = None
    if status is JobStatus.FAILED:
        error_detail = data.get("error") or data.get("message")
    return JobHandle(
        task_id=task_id,
        status=status,
        progress=progress if isinstance(progress, int) else 0,
        result_url=_extract_result_url(data.get("output")),
        error_detail=error_detail,
    )


@dataclass
class FaceSwapService:
    """Run face-swap jobs against the synthesis API."""

    client: SynthesisClient
    submit_attempts: int = 3
    max_poll_failures: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 8.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)

    async def submit(
        self,
        target_url: str,
        source_url: str,
        options: dict[str, object] | None = None,
    ) -> JobHandle:
        """Submit a face-swap job, retrying transient failures."""
        violations = [
            f"Invalid {name} locator"
            for name, value in (("target", target_url), ("source", source_url))
            if not is_image_locator(value)
        ]
        if violations:
            raise ValidationError(violations)

        for attempt in range(1, self.submit_attempts + 1):
            try:
                data = await self.client.submit_job(
                    target_url, source_url, options or {}
                )
            except NetworkError:
                if attempt >= self.submit_attempts:
                    raise
                _logger.warning(
                    "Face swap submission failed, retrying",
                    extra={"attempt": attempt},
                )
                await self.sleep(self._backoff(attempt))
                continue
            return _to_handle(str(data["task_id"]), data)
        raise NetworkError("Face swap submission was not attempted")

    async def poll(self, handle: JobHandle) -> JobHandle:
        """Fetch the current status of a job."""
        data = await self.client.get_job_status(handle.task_id)
        return _to_handle(handle.task_id, data)

    async def await_result(
        self, handle: JobHandle, max_wait: float, poll_interval: float
    ) -> JobHandle:
        """Poll until the job succeeds, fails or runs out of time."""
        deadline = self.clock() + max_wait
        consecutive_failures = 0
        while True:
            if handle.status is JobStatus.SUCCEEDED:
                if not handle.result_url:
                    raise TaskFailedError(
                        "Face swap finished without an output image",
                        detail=handle.task_id,
                    )
                return handle
            if handle.status is JobStatus.FAILED:
                raise classify_failure(handle.error_detail)

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise TaskTimeoutError(
                    f"Face swap task {handle.task_id} timed out after {max_wait}s",
                    detail=handle.task_id,
                )
            await self.sleep(min(poll_interval, remaining))
            try:
                handle = await self.poll(handle)
                consecutive_failures = 0
            except NetworkError:
                consecutive_failures += 1
                _logger.warning(
                    "Face swap status check failed",
                    extra={
                        "task_id": handle.task_id,
                        "failures": consecutive_failures,
                    },
                )
                if consecutive_failures >= self.max_poll_failures:
                    raise

    async def swap_face(
        self,
        target_url: str,
        source_url: str,
        max_wait: float,
        poll_interval: float,
        options: dict[str, object] | None = None,
    ) -> bytes:
        """Submit a job, wait for it and download the output image."""
        handle = await self.submit(target_url, source_url, options)
        _logger.info("Face swap task submitted", extra={"task_id": handle.task_id})
        finished = await self.await_result(handle, max_wait, poll_interval)
        return await self.client.download_result(finished.result_url or "")

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_seconds * 2 ** (attempt - 1), self.max_backoff_seconds)
