"""
config.py — CodeReview application settings.

Usage:
    from codereview.config import settings
    print(settings.redis_url)

Never use FastAPI Depends() for settings — import directly as a module-level singleton.
Cache TTLs are constants in cache.py, not settings.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore any extra env vars
    )

    # --- Cache backend: socket protocol ---
    redis_url: str = "redis://localhost:6379"

    # --- Cache backend: REST (Upstash) — preferred when both url and token are set ---
    upstash_redis_rest_url: str = ""
    upstash_redis_rest_token: str = ""

    # Store calls fail fast instead of hanging (seconds)
    store_timeout_seconds: float = 2.0

    # --- Analysis model ---
    mistral_api_key: str = ""
    mistral_model: str = "mistral-large-latest"
    analysis_timeout_seconds: float = 120.0
    analysis_concurrency: int = 2

    # --- Uploads ---
    max_archive_size: int = 50 * 1024 * 1024  # 50 MB

    # --- CORS ---
    # Comma-separated list of allowed frontend origins
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # --- Application ---
    debug: bool = True
    app_version: str = "0.1.0"

    @property
    def cors_origins_list(self) -> List[str]:
        """Split comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def use_rest_store(self) -> bool:
        """True when the REST store is fully configured (takes precedence over redis_url)."""
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)


# Module-level singleton — import this throughout the codebase
settings = Settings()
