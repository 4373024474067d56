"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_MEGABYTE = 1024 * 1024


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None

    webhook_secret: str
    webhook_secret_header: str = "X-Webhook-Secret"
    worker_webhook_url: str | None = None
    worker_webhook_timeout_seconds: float = 10.0

    blob_backend: Literal["memory", "s3"] = "memory"
    s3_bucket: str = "audio-uploads"
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    presign_ttl_seconds: int = 3600

    max_upload_bytes: int = 50 * _MEGABYTE
    max_audio_upload_bytes: int = 20 * _MEGABYTE

    retention_days: int = 90
    cleanup_enabled: bool = True
    cleanup_interval_seconds: float = 24 * 60 * 60

    model_config = SettingsConfigDict(env_prefix="AURALIS_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
