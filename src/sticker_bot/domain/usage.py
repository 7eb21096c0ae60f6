"""Usage counter models."""

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class UsageRecord:
    """Per-user generation counters."""

    user_id: int
    last_generation: date | None = None
    generations_today: int = 0
    total_generations: int = 0
