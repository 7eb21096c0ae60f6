"""Tests for face-swap job submission and polling."""

import asyncio
from dataclasses import dataclass, field

import pytest

from sticker_bot.domain.errors import (
    AuthorizationError,
    FaceDetectionError,
    NetworkError,
    TaskFailedError,
    TaskTimeoutError,
    ValidationError,
)
from sticker_bot.domain.generation import JobHandle, JobStatus
from sticker_bot.services.face_swap import FaceSwapService, is_face_detection_failure

TARGET = "https://example.com/templates/1.png"
SOURCE = "data:image/webp;base64,UklGRg=="


@dataclass
class ScriptedSynthesisClient:
    """Synthesis client replaying scripted responses."""

    submissions: list[dict[str, object] | Exception] = field(default_factory=list)
    statuses: list[dict[str, object] | Exception] = field(default_factory=list)
    output: bytes = b"swapped"
    submit_calls: int = 0
    status_calls: int = 0
    downloaded: list[str] = field(default_factory=list)

    async def submit_job(
        self, target_url: str, swap_url: str, options: dict[str, object]
    ) -> dict[str, object]:
        self.submit_calls += 1
        response = (
            self.submissions.pop(0)
            if self.submissions
            else {"task_id": "task-1", "status": "pending"}
        )
        if isinstance(response, Exception):
            raise response
        return response

    async def get_job_status(self, task_id: str) -> dict[str, object]:
        self.status_calls += 1
        response = (
            self.statuses.pop(0) if self.statuses else {"status": "processing"}
        )
        if isinstance(response, Exception):
            raise response
        return response

    async def download_result(self, url: str) -> bytes:
        self.downloaded.append(url)
        return self.output


@dataclass
class FakeClock:
    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _service(client: ScriptedSynthesisClient, clock: FakeClock) -> FaceSwapService:
    return FaceSwapService(client=client, sleep=clock.sleep, clock=clock)


def test_submit_rejects_invalid_locators() -> None:
    client = ScriptedSynthesisClient()

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(_service(client, FakeClock()).submit("ftp://nope", "not a url"))

    assert len(exc_info.value.violations) == 2
    assert client.submit_calls == 0


def test_submit_retries_network_errors() -> None:
    client = ScriptedSynthesisClient(
        submissions=[NetworkError("502"), NetworkError("503")]
    )
    clock = FakeClock()

    handle = asyncio.run(_service(client, clock).submit(TARGET, SOURCE))

    assert handle.task_id == "task-1"
    assert client.submit_calls == 3
    assert clock.sleeps == [1.0, 2.0]


def test_submit_gives_up_after_attempts() -> None:
    client = ScriptedSynthesisClient(submissions=[NetworkError("503")] * 3)

    with pytest.raises(NetworkError):
        asyncio.run(_service(client, FakeClock()).submit(TARGET, SOURCE))

    assert client.submit_calls == 3


def test_submit_does_not_retry_authorization_errors() -> None:
    client = ScriptedSynthesisClient(submissions=[AuthorizationError("401")])

    with pytest.raises(AuthorizationError):
        asyncio.run(_service(client, FakeClock()).submit(TARGET, SOURCE))

    assert client.submit_calls == 1


def test_await_result_polls_until_completed() -> None:
    client = ScriptedSynthesisClient(
        statuses=[
            {"status": "processing", "progress": 40},
            {"status": "completed", "output": {"image_url": "https://cdn/out.png"}},
        ]
    )
    clock = FakeClock()

    handle = asyncio.run(
        _service(client, clock).await_result(
            JobHandle(task_id="task-1"), max_wait=30, poll_interval=2
        )
    )

    assert handle.status is JobStatus.SUCCEEDED
    assert handle.result_url == "https://cdn/out.png"
    assert clock.sleeps == [2, 2]


def test_face_detection_failure_is_classified() -> None:
    client = ScriptedSynthesisClient(
        statuses=[
            {
                "status": "failed",
                "error": {"code": 10000, "message": "No face detected in image"},
            }
        ]
    )

    with pytest.raises(FaceDetectionError):
        asyncio.run(
            _service(client, FakeClock()).await_result(
                JobHandle(task_id="task-1"), max_wait=30, poll_interval=1
            )
        )


def test_other_failures_are_task_failures() -> None:
    client = ScriptedSynthesisClient(
        statuses=[{"status": "error", "error": {"message": "GPU out of memory"}}]
    )

    with pytest.raises(TaskFailedError, match="GPU"):
        asyncio.run(
            _service(client, FakeClock()).await_result(
                JobHandle(task_id="task-1"), max_wait=30, poll_interval=1
            )
        )


def test_completed_without_output_fails() -> None:
    client = ScriptedSynthesisClient(statuses=[{"status": "success", "output": {}}])

    with pytest.raises(TaskFailedError):
        asyncio.run(
            _service(client, FakeClock()).await_result(
                JobHandle(task_id="task-1"), max_wait=30, poll_interval=1
            )
        )


def test_await_result_times_out() -> None:
    client = ScriptedSynthesisClient()
    clock = FakeClock()

    with pytest.raises(TaskTimeoutError):
        asyncio.run(
            _service(client, clock).await_result(
                JobHandle(task_id="task-1"), max_wait=5, poll_interval=2
            )
        )

    assert clock.now == 5
    assert client.status_calls == 3


def test_poll_tolerates_transient_failures() -> None:
    client = ScriptedSynthesisClient(
        statuses=[
            NetworkError("timeout"),
            NetworkError("timeout"),
            {"status": "completed", "output": "https://cdn/out.png"},
        ]
    )

    handle = asyncio.run(
        _service(client, FakeClock()).await_result(
            JobHandle(task_id="task-1"), max_wait=30, poll_interval=1
        )
    )

    assert handle.result_url == "https://cdn/out.png"


def test_poll_failures_propagate_after_limit() -> None:
    client = ScriptedSynthesisClient(statuses=[NetworkError("timeout")] * 3)

    with pytest.raises(NetworkError):
        asyncio.run(
            _service(client, FakeClock()).await_result(
                JobHandle(task_id="task-1"), max_wait=30, poll_interval=1
            )
        )

    assert client.status_calls == 3


def test_swap_face_downloads_result() -> None:
    client = ScriptedSynthesisClient(
        statuses=[{"status": "completed", "output": {"url": "https://cdn/out.png"}}]
    )

    output = asyncio.run(
        _service(client, FakeClock()).swap_face(
            TARGET, SOURCE, max_wait=30, poll_interval=1
        )
    )

    assert output == b"swapped"
    assert client.downloaded == ["https://cdn/out.png"]


@pytest.mark.parametrize(
    "detail",
    [
        "Face not found in source image",
        "лицо не найдено",
        {"code": "FACE_NOT_DETECTED"},
        {"error_code": "NO_FACE"},
        {"type": "face_detection_error", "message": "rejected"},
    ],
)
def test_face_detection_patterns(detail: object) -> None:
    assert is_face_detection_failure(detail)


def test_unrelated_errors_do_not_match_face_patterns() -> None:
    assert not is_face_detection_failure({"message": "Internal server error"})
