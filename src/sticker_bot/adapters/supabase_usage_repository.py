"""Supabase repository for generation usage."""

from dataclasses import dataclass
from datetime import date

from supabase import Client

from sticker_bot.domain.usage import UsageRecord
from sticker_bot.services.usage import UsageRepository


@dataclass
class SupabaseUsageRepository(UsageRepository):
    """Supabase-backed usage counters and generation logs."""

    client: Client

    def get_usage(self, user_id: int) -> UsageRecord | None:
        """Return the usage row for a Telegram user, if present."""
        response = (
            self.client.table("user_limits")
            .select("user_id, last_generation, generations_today, total_generations")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        last_generation = row.get("last_generation")
        return UsageRecord(
            user_id=row["user_id"],
            last_generation=(
                date.fromisoformat(str(last_generation)[:10])
                if last_generation
                else None
            ),
            generations_today=row.get("generations_today") or 0,
            total_generations=row.get("total_generations") or 0,
        )

    def save_usage(self, record: UsageRecord) -> None:
        """Insert or update the usage row for a Telegram user."""
        self.client.table("user_limits").upsert(
            {
                "user_id": record.user_id,
                "last_generation": (
                    record.last_generation.isoformat()
                    if record.last_generation
                    else None
                ),
                "generations_today": record.generations_today,
                "total_generations": record.total_generations,
            },
            on_conflict="user_id",
        ).execute()

    def create_log(self, user_id: int, stage: str, details: dict[str, object]) -> None:
        """Insert a generation log row."""
        self.client.table("generation_logs").insert(
            {"user_id": user_id, "stage": stage, "details": details}
        ).execute()
