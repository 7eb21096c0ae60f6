"""Error taxonomy for the sticker generation pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_kind = "pipeline_error"


class ValidationError(PipelineError):
    """Bad input. Never retried."""

    error_kind = "validation_error"

    def __init__(self, violations: list[str] | str) -> None:
        if isinstance(violations, str):
            violations = [violations]
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class DownloadError(PipelineError):
    """File download failed after bounded retries."""

    error_kind = "download_error"


class NetworkError(PipelineError):
    """Transient transport failure (connection, 429, 5xx)."""

    error_kind = "network_error"


class AuthorizationError(PipelineError):
    """Credentials were rejected by a collaborator."""

    error_kind = "authorization_error"


class ConfigurationError(PipelineError):
    """A collaborator is missing or misconfigured."""

    error_kind = "configuration_error"


class SynthesisError(PipelineError):
    """A face-swap job ended without a usable result."""

    error_kind = "synthesis_error"

    def __init__(self, message: str, detail: object | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class FaceDetectionError(SynthesisError):
    """The synthesis service could not find a face in the source photo."""

    error_kind = "face_detection_error"


class TaskFailedError(SynthesisError):
    """The synthesis job reported a terminal failure."""

    error_kind = "task_failed"


class TaskTimeoutError(SynthesisError):
    """The synthesis job did not finish within its wait ceiling."""

    error_kind = "task_timeout"


class StickerSetApiError(PipelineError):
    """Telegram rejected a sticker set request."""

    error_kind = "sticker_set_api_error"

    def __init__(self, description: str, status_code: int | None = None) -> None:
        super().__init__(description)
        self.description = description
        self.status_code = status_code


class ContainerInvalidError(PipelineError):
    """The sticker set can no longer accept stickers and must be recreated."""

    error_kind = "container_invalid"

    def __init__(self, pack_name: str, last_error: str) -> None:
        super().__init__(f"Sticker set {pack_name} is invalid: {last_error}")
        self.pack_name = pack_name
        self.last_error = last_error


class InsufficientOutputError(PipelineError):
    """Too few stickers were produced to build a pack."""

    error_kind = "insufficient_output"

    def __init__(self, succeeded: int, required: int) -> None:
        super().__init__(
            f"Insufficient stickers generated: {succeeded}/{required} minimum"
        )
        self.succeeded = succeeded
        self.required = required


def error_kind(exc: BaseException) -> str:
    """Return a stable error kind for logs and outcomes."""
    if isinstance(exc, PipelineError):
        return exc.error_kind
    if isinstance(exc, TimeoutError):
        return TaskTimeoutError.error_kind
    return type(exc).__name__
