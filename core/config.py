from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str

    # Redis
    redis_url: str

    # API
    public_base_url: str = "http://localhost:8000"
    api_port: int = 8000

    # Security
    secret_key: str  # signs session tokens
    relay_secret: str  # HMAC secret for login relay -> API authentication
    game_api_key: str = ""  # in-game client submissions; empty disables the endpoint
    session_ttl_hours: int = 24

    # Webhooks (Discord-style embeds)
    webhook_player_reports: str = ""
    webhook_bug_reports: str = ""
    webhook_feedback: str = ""
    webhook_urgent: str = ""

    # Staff chat bot
    telegram_bot_token: str = ""
    staff_chat_id: int | None = None

    # Attachments
    upload_dir: str = "uploads"
    max_file_size: int = 10 * 1024 * 1024
    max_files_per_report: int = 5

    # Rate limiting for public submissions
    report_rate_limit: int = 5
    report_rate_window_seconds: int = 600

    # Scheduled tasks
    stale_report_hours: int = 24
    retention_days: int = 90
    stale_sweep_interval_seconds: int = 60 * 60
    auto_assign_interval_seconds: int = 30 * 60
    digest_interval_seconds: int = 7 * 24 * 60 * 60
    retention_interval_seconds: int = 24 * 60 * 60

    # Logging
    log_level: str = "INFO"

    # Environment
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
