"""Configuration settings for the application."""

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from AION_* environment variables or a .env file if not provided
    model_config = SettingsConfigDict(
        env_prefix="AION_", env_file=".env", env_file_encoding="utf-8"
    )

    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PROVIDER: str = "gemini"  # Options: gemini, anthropic, openai, deepseek, custom
    API_KEY: str | None = None
    MODEL: str | None = None  # Empty means the provider default
    CUSTOM_URL: str | None = None  # Only used by the "custom" provider
    REQUEST_TIMEOUT: float = 120.0

    # Prompt augmentation
    LANGUAGE: str = "en"
    CUSTOM_INSTRUCTIONS: str | None = None

    # Tools
    WORKSPACE_DIR: str = "."
    COMMAND_TIMEOUT: int = 60

    # Observer channel
    EVENT_QUEUE_SIZE: int = 256


def load_settings() -> Settings:
    """
    Build a fresh :class:`Settings` instance.

    The model gateway and the prompt composer call this on every inference so that edits to the
    environment or ``.env`` take effect on the next turn without restarting anything.
    """
    return Settings()


settings = load_settings()
