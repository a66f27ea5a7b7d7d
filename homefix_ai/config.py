"""Pydantic Settings for homefix-ai configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration via environment variables (or .env file)."""

    # --- LLM Provider ---
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    GENERATION_TIMEOUT_SECONDS: float = 60.0
    CHAT_MAX_TOKENS: int = 300

    # --- Media ---
    MAX_IMAGES: int = 4
    MAX_IMAGE_MB: int = 20
    MAX_IMAGE_DIMENSION: int = 1600
    JPEG_QUALITY: int = 75
    IMAGE_WORKERS: int = 4

    # --- Rate Limits (slowapi syntax) ---
    ANALYZE_RATE_LIMIT: str = "10/minute"
    DEFAULT_RATE_LIMIT: str = "100/minute"

    # --- API ---
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3000
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    # --- Logging ---
    LOG_DIR: str = str(Path.home() / ".homefix-ai" / "logs")
    LOG_TO_STDERR: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def max_image_bytes(self) -> int:
        return self.MAX_IMAGE_MB * 1024 * 1024


settings = Settings()


def validate_settings() -> list[str]:
    """Return list of missing required settings. Empty list means all OK."""
    missing = []
    if not settings.OPENAI_API_KEY:
        missing.append("OPENAI_API_KEY")
    return missing
