"""Daily limits and generation logging."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from typing import Protocol

from sticker_bot.domain.usage import UsageRecord

_logger = logging.getLogger(__name__)


class UsageRepository(Protocol):
    """Persistence interface for usage counters and logs."""

    def get_usage(self, user_id: int) -> UsageRecord | None:
        """Return the usage row for a Telegram user, if present."""

    def save_usage(self, record: UsageRecord) -> None:
        """Insert or update the usage row for a Telegram user."""

    def create_log(self, user_id: int, stage: str, details: dict[str, object]) -> None:
        """Insert a generation log row."""


def _utc_today() -> date:
    return datetime.now(tz=UTC).date()


@dataclass
class UsageService:
    """Usage recorder. Storage failures never block a generation."""

    repository: UsageRepository | None
    daily_limit: int = 1
    today: Callable[[], date] = field(default=_utc_today)

    def check_daily_limit(self, user_id: int) -> bool:
        """Return true when the user may start another generation today."""
        if self.repository is None:
            return True
        try:
            record = self.repository.get_usage(user_id)
        except Exception:
            _logger.warning(
                "Usage check failed, allowing generation",
                exc_info=True,
                extra={"user_id": user_id},
            )
            return True
        if record is None or record.last_generation != self.today():
            return True
        return record.generations_today < self.daily_limit

    def record_generation(
        self, user_id: int, completed: bool, details: dict[str, object]
    ) -> None:
        """Log the finished run and count it against the limit when completed."""
        self.log_event(user_id, "completed" if completed else "failed", details)
        if not completed or self.repository is None:
            return
        today = self.today()
        try:
            record = self.repository.get_usage(user_id) or UsageRecord(user_id)
            generations_today = (
                record.generations_today + 1 if record.last_generation == today else 1
            )
            self.repository.save_usage(
                replace(
                    record,
                    last_generation=today,
                    generations_today=generations_today,
                    total_generations=record.total_generations + 1,
                )
            )
        except Exception:
            _logger.warning(
                "Failed to update usage counters",
                exc_info=True,
                extra={"user_id": user_id},
            )

    def log_event(self, user_id: int, stage: str, details: dict[str, object]) -> None:
        """Write a generation log row."""
        if self.repository is None:
            return
        try:
            self.repository.create_log(user_id, stage, details)
        except Exception:
            _logger.warning(
                "Failed to write generation log",
                exc_info=True,
                extra={"user_id": user_id, "stage": stage},
            )
