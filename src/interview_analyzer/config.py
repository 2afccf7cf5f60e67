"""
Interview analyzer settings.

Values come from the environment (case-insensitive) or a local .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline, model and storage settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/interview_analyzer.db",
        description="SQLAlchemy async connection string (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log",
    )

    # LLM Configuration (Ollama)
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Ollama model used by every LLM stage",
    )
    llm_timeout: int = Field(
        default=180,
        description="Seconds before one ollama call is abandoned",
    )
    llm_max_retries: int = Field(
        default=1,
        description="Extra attempts after a failed ollama call",
    )
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Base URL of the Ollama HTTP API (used for embeddings)",
    )

    # Embeddings (optional stage)
    use_embeddings: bool = Field(
        default=False,
        description="Enable the optional embedding similarity stage",
    )
    embedding_model: str = Field(
        default="nomic-embed-text",
        description="Ollama embedding model name",
    )
    embedding_timeout: int = Field(
        default=60,
        description="Timeout in seconds for embedding requests",
    )

    # Speech-to-text
    whisper_model_size: str = Field(
        default="small",
        description="faster-whisper model size (tiny, base, small, medium, large-v3)",
    )
    whisper_device: str = Field(
        default="cpu",
        description="Device for faster-whisper (cpu|cuda|auto)",
    )
    whisper_compute_type: str | None = Field(
        default=None,
        description="faster-whisper compute type (e.g., int8, float16)",
    )
    whisper_language: str | None = Field(
        default=None,
        description="Force a transcription language (None = auto-detect)",
    )

    # Security
    encryption_key: str | None = Field(
        default=None,
        description="64 hex characters (32 bytes) AES-256-GCM key for transcript encryption",
    )

    # Pipeline
    pipeline_lease_seconds: int = Field(
        default=3600,
        description="How long a run may hold the per-interview lease before it is considered stale",
    )
    missed_follow_up_window: int = Field(
        default=2,
        description="Number of subsequent questions searched for a follow-up to an answer",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
