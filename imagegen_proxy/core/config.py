"""
Application configuration.
All settings are loaded from environment variables (or .env) once at startup
and injected into the app factory.
"""
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Env names reported when a required upstream setting is missing.
REQUIRED_SETTINGS = {
    "ai_service_url": "AI_SERVICE_URL",
    "storage_service_url": "STORAGE_SERVICE_URL",
    "storage_files_url_prefix": "STORAGE_FILES_URL_PREFIX",
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The three upstream URLs have empty defaults so the process can start
    without them; the app answers every request with a configuration error
    until they are set (see missing_required).
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"
    max_request_bytes: int = 1_048_576
    uvicorn_host: str = "0.0.0.0"
    uvicorn_port: int = 8000
    uvicorn_workers: int = 1

    # ===========================================
    # UPSTREAM SERVICES (required)
    # ===========================================
    ai_service_url: str = ""
    storage_service_url: str = ""
    storage_files_url_prefix: str = ""

    http_client_timeout: float = 60.0
    generation_user_agent: str = "ImageGenProxy-ImageGenerator/1.0"
    upload_user_agent: str = "ImageGenProxy/1.0"

    # ===========================================
    # IMAGE GENERATION - RETRY POLICY
    # ===========================================
    generation_max_attempts: int = 4
    generation_timeout_seconds: float = 45.0
    generation_base_delay_seconds: float = 2.0
    generation_max_delay_seconds: float = 15.0
    # Anonymous tier cool-down is 15s; wait one second more on 429/403.
    generation_rate_limit_delay_seconds: float = 16.0

    # ===========================================
    # STORAGE UPLOAD - RETRY POLICY
    # ===========================================
    upload_max_attempts: int = 3
    upload_timeout_seconds: float = 20.0
    upload_base_delay_seconds: float = 1.0
    upload_max_delay_seconds: float = 8.0

    # ===========================================
    # LOGGING & METRICS
    # ===========================================
    log_level: str = "INFO"
    request_id_header: str = "X-Request-Id"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("ai_service_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("ai_service_url", "storage_service_url", "storage_files_url_prefix")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Empty is allowed (reported as missing later); anything else must be http(s)."""
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("must be an http:// or https:// URL")
        return v

    @field_validator("generation_max_attempts", "upload_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max attempts must be at least 1")
        return v

    def missing_required(self) -> list[str]:
        """Env names of required upstream settings that are empty, in declaration order."""
        return [env for field, env in REQUIRED_SETTINGS.items() if not getattr(self, field)]


@lru_cache
def get_settings() -> Settings:
    return Settings()
