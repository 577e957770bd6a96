"""Application configuration: reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Settings fields that may be supplied as Docker Swarm secrets.
SECRET_FIELDS = (
    "supabase_url",
    "supabase_key",
    "google_ai_api_key",
    "aws_access_key_id",
    "aws_secret_access_key",
    "bright_data_key",
    "comfy_ui_server_url",
)


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    # Datastore
    supabase_url: str = ""
    supabase_key: str = ""

    # Generative AI
    google_ai_api_key: str = ""
    chat_model: str = "gemini-2.5-flash"
    tts_model: str = "gemini-2.5-pro-preview-tts"
    dialogue_tts_model: str = "gemini-2.5-flash-preview-tts"
    stt_model: str = "gemini-2.0-flash"

    # Object store
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    s3_bucket: str = "audio-chat-bymarco"
    s3_endpoint_url: str | None = None
    media_url_ttl: int = 3600
    persona_image_url_ttl: int = 86400

    # Discovery API
    bright_data_key: str = ""
    bright_data_dataset_id: str = "gd_lvz8ah06191smkebj4"
    crawl_poll_interval: float = 3.0
    crawl_deadline: float = 45.0

    # Job engine
    comfy_ui_server_url: str = "http://localhost:8188"
    video_workflow_path: str = "workflows/i2v-wan-api.json"
    video_timeout_seconds: float = 300.0

    persona_cache_ttl_seconds: float = 60 * 60 * 24

    port: int = 3001
    log_level: str = "INFO"
    serve_frontend: bool = False
    frontend_dist: str = "frontend/dist"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        for name in SECRET_FIELDS:
            if secret := _read_secret(name):
                setattr(self, name, secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
