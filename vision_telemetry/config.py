from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "2.0.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # ── Event log files ─────────────────────────────────────────────────
    logs_dir: str = "logs"
    # A log file at or above this size is renamed to a .backup before the next write
    max_log_file_bytes: int = 10 * 1024 * 1024
    log_cleanup_default_days: int = 7

    # ── Sessions ────────────────────────────────────────────────────────
    # Closed sessions stay visible for this long, then are evicted
    session_retention_seconds: float = 60.0
    user_agent_max_length: int = 200

    # ── General ─────────────────────────────────────────────────────────
    allowed_origins: str = "*"              # comma-separated
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
