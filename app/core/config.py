from typing import Any

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STUB_API_KEYS = {"stub", "debug"}
VISION_PROVIDERS = {"openai"}


def _normalize_provider(value: Any) -> str:
    """Lowercase and strip the configured provider name."""
    if value is None:
        return ""
    return str(value).strip().lower()


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./smart_import.db"

    # Application
    ENV: str = "development"
    APP_NAME: str = "Vitto Smart Import"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Import pipeline
    IMPORT_MAX_FILE_MB: int = 20
    IMPORT_PDF_MAX_PAGES: int = 10
    IMPORT_HEADER_SCAN_ROWS: int = 10
    IMPORT_RATE_LIMIT_MAX: int = 20
    IMPORT_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    # Document vision
    VISION_PROVIDER: str = "openai"
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    VISION_MODEL: str = "gpt-4o-mini"
    VISION_TIMEOUT_SECONDS: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("VISION_PROVIDER", mode="before")
    @classmethod
    def parse_vision_provider(cls, value: Any) -> str:
        return _normalize_provider(value) or "openai"

    @computed_field
    @property
    def import_max_file_bytes(self) -> int:
        """Upload limit in bytes derived from IMPORT_MAX_FILE_MB."""
        return self.IMPORT_MAX_FILE_MB * 1024 * 1024

    @computed_field
    @property
    def vision_is_stubbed(self) -> bool:
        return self.OPENAI_API_KEY.strip().lower() in STUB_API_KEYS


def _validate_settings() -> None:
    """Fail fast when running production with unusable defaults."""
    if settings.VISION_PROVIDER not in VISION_PROVIDERS:
        raise ValueError(f"VISION_PROVIDER inválido: {settings.VISION_PROVIDER!r}. Use 'openai'.")

    if settings.ENV.lower() != "production":
        return

    if settings.DATABASE_URL.startswith("sqlite"):
        raise ValueError("Use PostgreSQL in production; sqlite is only for local/dev.")

    if not settings.OPENAI_API_KEY or settings.vision_is_stubbed:
        raise ValueError("OPENAI_API_KEY must be set to a real key in production.")


settings = Settings()


_validate_settings()
