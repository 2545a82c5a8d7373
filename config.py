"""
Application configuration for the Llama.io Tasks API.

All values come from environment variables (or a local .env file).
DATABASE_URL and DATABASE_NAME keep their historical names so existing
deployments keep working.
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "llama_io"
    server_selection_timeout_ms: int = 5000

    # API
    cors_origins: List[str] = ["*"]
    api_prefix: str = ""
    task_default_limit: int = 100
    port: int = 8000

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
