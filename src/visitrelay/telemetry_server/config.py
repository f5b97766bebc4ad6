"""Server configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Analytics sink
    posthog_api_key: str = ""
    posthog_host: str = "https://us.i.posthog.com"
    flush_at: int = 20
    flush_interval: float = 0.5
    max_queue_size: int = 10_000
    shutdown_timeout: float = 5.0

    # CORS; credentials are allowed, so origins must be listed explicitly
    allowed_origins: list[str] = [
        "http://localhost:8082",
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Server
    host: str = "0.0.0.0"
    port: int = 3231
    debug: bool = False
    log_level: str = "INFO"


settings = Settings()
