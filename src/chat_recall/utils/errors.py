"""
Exception hierarchy for the ask pipeline.

Adapters translate provider exceptions (OpenAI, ChromaDB) into these types
with ``raise ... from e``; the pipeline itself lets them propagate.
"""


class ChatRecallError(Exception):
    """Base class; the CLI reports any of these as a failed ask."""
    pass


class ValidationError(ChatRecallError):
    """Question or embedding input is unusable, e.g. empty after normalization."""
    pass


class ConfigurationError(ChatRecallError):
    """Missing API key, unsupported embedding dimensions or a rejected credential."""
    pass


class EmbeddingError(ChatRecallError):
    """Query embedding failed after retries."""
    pass


class StorageError(ChatRecallError):
    """ChromaDB is unreachable."""
    pass


class RetrievalError(ChatRecallError):
    """A message, window or neighbor lookup failed."""
    pass


class GenerationError(ChatRecallError):
    """The chat model call failed or returned no choices."""
    pass
