"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    telegram_bot_username: str = "NewPeopleStickersBot"
    piapi_api_key: str | None = None
    piapi_base_url: str = "https://api.piapi.ai"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    environment: str = _ENVIRONMENT

    # Generation pipeline
    batch_size: int = 3
    continue_on_error: bool = True
    fallback_enabled: bool = True
    min_successful_stickers: int = 5
    max_pack_attempts: int = 3
    pipeline_timeout_seconds: float = 600.0
    template_timeout_seconds: float = 60.0
    template_attempts: int = 2
    job_max_wait_seconds: float = 55.0
    job_poll_interval_seconds: float = 2.0
    face_swap_options: dict[str, object] = {}
    download_attempts: int = 3
    submit_attempts: int = 3
    max_poll_failures: int = 3

    # Image bounds
    max_photo_bytes: int = 10 * 1024 * 1024
    min_photo_side: int = 100
    max_aspect_ratio: float = 3.0
    sticker_max_side: int = 512
    sticker_target_bytes: int = 500 * 1024
    sticker_quality: int = 85

    # Pack assembly
    append_delay_seconds: float = 0.3
    retry_delay_seconds: float = 1.0
    pack_title_prefix: str = "New People Stickers"

    daily_limit: int = 1

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def synthesis_configured(self) -> bool:
        """Return true when the face-swap API key is usable."""
        return bool(self.piapi_api_key) and self.piapi_api_key != "your_piapi_api_key"

    @property
    def usage_store_configured(self) -> bool:
        """Return true when Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_service_key)
