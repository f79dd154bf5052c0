"""Utilities module for chat-recall."""

from chat_recall.utils.errors import (
    ChatRecallError,
    ValidationError,
    ConfigurationError,
    EmbeddingError,
    StorageError,
    RetrievalError,
    GenerationError
)
from chat_recall.utils.logging import setup_logging, StructuredLogger
from chat_recall.utils.text import normalize_query, is_bulk_content, extract_search_terms

__all__ = [
    "ChatRecallError",
    "ValidationError",
    "ConfigurationError",
    "EmbeddingError",
    "StorageError",
    "RetrievalError",
    "GenerationError",
    "setup_logging",
    "StructuredLogger",
    "normalize_query",
    "is_bulk_content",
    "extract_search_terms",
]
