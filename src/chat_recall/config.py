"""Configuration management for chat-recall."""

import os
from dataclasses import dataclass

from chat_recall.constants import DEFAULT_LOOKBACK_DAYS
from chat_recall.services.answer_synthesizer import DEFAULT_SYSTEM_PROMPT


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    openai_api_key: str
    openai_chat_model: str
    openai_embed_model: str
    openai_embed_dims: int
    openai_timeout: int
    openai_max_retries: int

    # ChromaDB Configuration
    chroma_host: str
    chroma_port: int
    message_collection: str
    window_collection: str

    # Retrieval
    default_lookback_days: int

    # Persona
    system_prompt: str

    log_level: str


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config object with all settings

    Raises:
        ValueError: If required environment variables are missing
    """
    openai_api_key = os.getenv("OPENAI_API_KEY")
    if not openai_api_key:
        raise ValueError(
            "OPENAI_API_KEY environment variable is required. "
            "Please set it in your .env file or environment."
        )

    return Config(
        # OpenAI
        openai_api_key=openai_api_key,
        openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        openai_embed_model=os.getenv("OPENAI_EMBED_MODEL", "text-embedding-3-large"),
        openai_embed_dims=int(os.getenv("OPENAI_EMBED_DIMS", "3072")),
        openai_timeout=int(os.getenv("OPENAI_TIMEOUT", "30")),
        openai_max_retries=int(os.getenv("OPENAI_MAX_RETRIES", "3")),

        # ChromaDB
        chroma_host=os.getenv("CHROMA_HOST", "localhost"),
        chroma_port=int(os.getenv("CHROMA_PORT", "8001")),
        message_collection=os.getenv("MESSAGE_COLLECTION", "chat_messages"),
        window_collection=os.getenv("WINDOW_COLLECTION", "chat_windows"),

        # Retrieval
        default_lookback_days=int(os.getenv("DEFAULT_LOOKBACK_DAYS", str(DEFAULT_LOOKBACK_DAYS))),

        system_prompt=os.getenv("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,

        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def validate_config(config: Config) -> None:
    """
    Validate configuration values.

    Args:
        config: Configuration to validate

    Raises:
        ValueError: If any configuration value is invalid
    """
    if config.openai_embed_dims not in [256, 1024, 3072]:
        raise ValueError(
            f"Invalid OPENAI_EMBED_DIMS: {config.openai_embed_dims}. "
            "Must be one of: 256, 1024, 3072"
        )

    if config.openai_timeout <= 0:
        raise ValueError(f"OPENAI_TIMEOUT must be positive, got {config.openai_timeout}")

    if config.openai_max_retries < 1:
        raise ValueError(f"OPENAI_MAX_RETRIES must be >= 1, got {config.openai_max_retries}")

    if not 1 <= config.chroma_port <= 65535:
        raise ValueError(f"Invalid CHROMA_PORT: {config.chroma_port}")

    if config.message_collection == config.window_collection:
        raise ValueError(
            f"MESSAGE_COLLECTION and WINDOW_COLLECTION must differ "
            f"(both are '{config.message_collection}')"
        )

    if config.default_lookback_days < 1:
        raise ValueError(
            f"DEFAULT_LOOKBACK_DAYS must be >= 1, got {config.default_lookback_days}"
        )

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: {config.log_level}. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )
