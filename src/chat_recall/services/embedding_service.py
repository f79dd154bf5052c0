"""OpenAI query embedding with retry logic."""

import logging
import time
from typing import List

import openai
from openai import OpenAI

from chat_recall.utils.errors import ConfigurationError, EmbeddingError, ValidationError


logger = logging.getLogger("chat-recall.embedding")

SUPPORTED_DIMENSIONS = (256, 1024, 3072)


class EmbeddingService:
    """
    Embeds search queries with the same model the chat index was built with.

    Queries are embedded one at a time; indexing happens outside this
    package, so there is no batch path.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-large",
        dimensions: int = 3072,
        timeout: int = 30,
        max_retries: int = 3
    ):
        """
        Initialize embedding service.

        Args:
            api_key: OpenAI API key
            model: Embedding model name
            dimensions: Embedding dimensions (must match the index)
            timeout: Request timeout (seconds)
            max_retries: Max attempts for transient failures

        Raises:
            ConfigurationError: If the key is missing or dimensions unsupported
        """
        if not api_key:
            raise ConfigurationError("OpenAI API key is required")
        if dimensions not in SUPPORTED_DIMENSIONS:
            raise ConfigurationError(
                f"Unsupported embedding dimensions {dimensions}; "
                f"expected one of {SUPPORTED_DIMENSIONS}"
            )

        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

    def embed_query(self, query: str) -> List[float]:
        """
        Embed one search query.

        Args:
            query: Normalized question text

        Returns:
            Embedding vector

        Raises:
            ValidationError: Empty query or rejected input
            ConfigurationError: Invalid API key
            EmbeddingError: Generation failed after retries
        """
        if not query or not query.strip():
            raise ValidationError("Query cannot be empty")

        start_time = time.time()
        response = self._call_with_retry(
            self.client.embeddings.create,
            input=[query],
            model=self.model,
            dimensions=self.dimensions
        )

        if not response.data:
            raise EmbeddingError("OpenAI returned no embedding data")

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Embedded query: model={self.model}, dims={self.dimensions}, latency={latency_ms}ms")

        return response.data[0].embedding

    def _call_with_retry(self, func, *args, **kwargs):
        """
        Call the OpenAI client with exponential backoff.

        Auth and bad-request errors fail immediately; rate limits, timeouts
        and server errors are retried up to ``max_retries`` attempts.
        """
        attempts = 0
        backoff = 1.0

        while True:
            try:
                return func(*args, **kwargs)

            except openai.AuthenticationError as e:
                raise ConfigurationError(
                    "Invalid OpenAI API key. Check OPENAI_API_KEY environment variable."
                ) from e

            except openai.BadRequestError as e:
                raise ValidationError(f"Invalid embedding input: {e}") from e

            except (
                openai.RateLimitError,
                openai.APITimeoutError,
                openai.APIConnectionError,
                openai.InternalServerError
            ) as e:
                attempts += 1
                if attempts >= self.max_retries:
                    raise EmbeddingError(
                        f"Embedding failed after {attempts} attempts: {type(e).__name__}"
                    ) from e

                logger.warning(
                    f"{type(e).__name__} (attempt {attempts}/{self.max_retries}), "
                    f"retrying in {backoff}s"
                )
                time.sleep(backoff)
                backoff *= 2

            except openai.APIError as e:
                raise EmbeddingError(f"OpenAI API error: {e}") from e

    def health_check(self) -> dict:
        """
        Test API connectivity with a tiny embedding.

        Returns:
            Dictionary with status, latency_ms, and optional error
        """
        try:
            start_time = time.time()
            self.embed_query("ping")
            latency_ms = int((time.time() - start_time) * 1000)
            return {"status": "healthy", "model": self.model, "api_latency_ms": latency_ms}
        except (ConfigurationError, ValidationError, EmbeddingError) as e:
            return {"status": "unhealthy", "model": self.model, "error": str(e)}
