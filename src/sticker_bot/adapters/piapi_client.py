"""PiAPI face-swap client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from sticker_bot.domain.errors import (
    AuthorizationError,
    ConfigurationError,
    NetworkError,
    PipelineError,
    SynthesisError,
    ValidationError,
)

FACE_SWAP_MODEL = "Qubico/image-toolkit"
FACE_SWAP_TASK_TYPE = "face-swap"


class SynthesisClient(Protocol):
    """Interface for a remote face-swap job API."""

    async def submit_job(
        self, target_url: str, swap_url: str, options: dict[str, object]
    ) -> dict[str, object]:
        """Create a face-swap task and return its data payload."""

    async def get_job_status(self, task_id: str) -> dict[str, object]:
        """Return the data payload of a task."""

    async def download_result(self, url: str) -> bytes:
        """Download a finished task's output image."""


@dataclass
class HttpxPiapiClient(SynthesisClient):
    """PiAPI client using httpx."""

    api_key: str
    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30.0

    @classmethod
    def create(
        cls, api_key: str, base_url: str = "https://api.piapi.ai"
    ) -> "HttpxPiapiClient":
        """Create a PiAPI client with a managed httpx session."""
        return cls(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
        )

    async def submit_job(
        self, target_url: str, swap_url: str, options: dict[str, object]
    ) -> dict[str, object]:
        """Submit a face-swap task."""
        payload = {
            "model": FACE_SWAP_MODEL,
            "task_type": FACE_SWAP_TASK_TYPE,
            "input": {
                "target_image": target_url,
                "swap_image": swap_url,
                **options,
            },
        }
        data = await self._request("POST", "/api/v1/task", json=payload)
        if not data.get("task_id"):
            raise SynthesisError("PiAPI response is missing task_id", detail=data)
        return data

    async def get_job_status(self, task_id: str) -> dict[str, object]:
        """Fetch the current state of a task."""
        return await self._request("GET", f"/api/v1/task/{task_id}")

    async def download_result(self, url: str) -> bytes:
        """Download the output image of a finished task."""
        try:
            response = await self.http_client.get(url, timeout=self.timeout_seconds)
        except httpx.TransportError as exc:
            raise NetworkError(f"Result download failed: {exc}") from exc
        _raise_for_status(response)
        return response.content

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def _request(
        self, method: str, path: str, json: dict[str, object] | None = None
    ) -> dict[str, object]:
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers={"x-api-key": self.api_key},
                timeout=self.timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise NetworkError(f"PiAPI request failed: {exc}") from exc
        _raise_for_status(response)
        body = response.json()
        code = body.get("code", 200)
        if isinstance(code, int) and code != 200:
            raise _error_for_status(code, str(body.get("message", "PiAPI error")))
        data = body.get("data")
        if not isinstance(data, dict):
            raise SynthesisError("PiAPI response has no data", detail=body)
        return data


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        message = str(response.json().get("message", response.text))
    except ValueError:
        message = response.text
    raise _error_for_status(response.status_code, message or response.reason_phrase)


def _error_for_status(status_code: int, message: str) -> PipelineError:
    """Map an HTTP or API status code to a pipeline error."""
    text = f"PiAPI {status_code}: {message}"
    if status_code in {401, 403}:
        return AuthorizationError(text)
    if status_code == 402:
        return ConfigurationError(text)
    if status_code in {400, 422}:
        return ValidationError(text)
    if status_code == 429 or status_code >= 500:
        return NetworkError(text)
    return SynthesisError(text)
