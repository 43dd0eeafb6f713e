"""Application configuration from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./clubledger.db",
        description="SQLAlchemy async connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # Ledger transactions
    ledger_max_attempts: int = Field(
        default=5, ge=1, description="Attempts per atomic unit before a conflict is surfaced"
    )
    ledger_retry_wait_initial: float = Field(
        default=0.05, ge=0, description="First backoff delay between attempts (seconds)"
    )
    ledger_retry_wait_max: float = Field(
        default=1.0, ge=0, description="Upper bound of the backoff delay (seconds)"
    )
    ledger_timeout_seconds: float | None = Field(
        default=10.0, description="Default timeout for one atomic ledger operation"
    )

    # API
    api_title: str = Field(default="Club Ledger API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Global settings instance
settings = Settings()
