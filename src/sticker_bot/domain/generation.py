"""Domain models for sticker generation runs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class OutcomeStatus(str, Enum):
    """Result of processing one template."""

    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class TemplateOutcome:
    """Outcome of one template within a batch run."""

    template_id: str
    emoji: str
    status: OutcomeStatus
    output_bytes: bytes | None = None
    error_kind: str | None = None
    used_fallback: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


class JobStatus(str, Enum):
    """Lifecycle of a remote face-swap job."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class JobHandle:
    """Reference to a submitted face-swap job."""

    task_id: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result_url: str | None = None
    error_detail: object | None = None


@dataclass(frozen=True)
class FailedAppend:
    """A sticker that could not be appended to the set."""

    outcome: TemplateOutcome
    last_error: str


@dataclass
class PackAssembly:
    """Mutable record of one sticker set assembly attempt."""

    pack_name: str
    owner_user_id: int
    appended_count: int = 0
    invalid_attempts: int = 0
    failed_appends: list[FailedAppend] = field(default_factory=list)


@dataclass(frozen=True)
class PackResult:
    """Final description of an assembled sticker set."""

    pack_name: str
    share_url: str
    requested_count: int
    actual_count: int
    failed_count: int

    @property
    def is_partial(self) -> bool:
        return self.actual_count < self.requested_count


@dataclass(frozen=True)
class ProgressCounts:
    """Counts reported with each progress notification."""

    processed: int
    succeeded: int
    failed: int
    total: int


class GenerationState(str, Enum):
    """States of the per-chat generation session."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class GenerationSession:
    """Per-chat generation session."""

    chat_id: int
    user_id: int
    state: GenerationState
    started_at: datetime


@dataclass(frozen=True)
class GenerationReport:
    """Summary of a finished generation run."""

    state: GenerationState
    duration_seconds: float
    succeeded: int = 0
    failed: int = 0
    pack: PackResult | None = None
    error_kind: str | None = None
