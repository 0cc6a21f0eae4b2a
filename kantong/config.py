"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env
file as a fallback. Nothing here is secret by default: the only credential,
GEMINI_API_KEY, is optional. Without it the chat endpoint answers with a
"cannot process" notice and the REST endpoints keep working.

Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from kantong.config import settings
    print(settings.DATABASE_URL)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Kantong service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    APP_NAME: str = "Kantong"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # The backup job copies this file, so keep it a file-based SQLite URL
    # unless backups are disabled.
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/finance.db"

    # --- Ledger ---
    # Period filters (today, this_month, ...) are evaluated in this zone.
    TIMEZONE: str = "UTC"
    DEFAULT_WALLET: str = "cash"

    # --- Decision step (LLM) ---
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    LLM_TIMEOUT_SECONDS: float = 30.0

    # --- Chat sessions ---
    CHAT_HISTORY_LIMIT: int = 10
    CHAT_CONTEXT_TURNS: int = 5
    SESSION_IDLE_TIMEOUT_SECONDS: int = 1800

    # --- Scheduled jobs / backups ---
    ENABLE_SCHEDULER: bool = True
    BACKUP_DIR: str = "./backups"
    BACKUP_KEEP_DAYS: int = 7
    BACKUP_HOUR: int = 0
    # Chat handle that receives database backups (e.g. "62812xxxx@c.us")
    OWNER_HANDLE: str | None = None

    # --- Export ---
    EXPORT_DIR: str = "./exports"

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
