"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "postgresql://localhost:5432/pipevault"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # Google Gemini (manifest extraction)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    gemini_timeout: int = 60  # seconds

    # Resend (transactional email)
    resend_api_key: str = ""
    resend_base_url: str = "https://api.resend.com"
    notification_from_email: str = "PipeVault <notifications@pipevault.app>"
    notification_max_attempts: int = 5

    # Slack
    slack_webhook_url: str = ""

    # Yard layout
    nominal_joint_length_m: float = 12.0
    default_rack_capacity: int = 200

    # Uploads
    max_upload_size_mb: int = 10

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000


settings = Settings()
