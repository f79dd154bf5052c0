"""ChromaDB client management for chat-recall."""

import logging
import time
from typing import Optional

import chromadb
from chromadb.api import ClientAPI

from chat_recall.utils.errors import StorageError


logger = logging.getLogger("chat-recall.storage")


class ChromaClientManager:
    """Lazily connects to the ChromaDB server holding the chat indexes."""

    def __init__(self, host: str, port: int):
        """
        Initialize ChromaDB client manager.

        Args:
            host: ChromaDB host address
            port: ChromaDB port number
        """
        self._client: Optional[ClientAPI] = None
        self.host = host
        self.port = port

    def get_client(self) -> ClientAPI:
        """
        Get or create the ChromaDB client.

        Raises:
            StorageError: If ChromaDB is unreachable
        """
        if self._client is None:
            try:
                client = chromadb.HttpClient(host=self.host, port=self.port)
                client.heartbeat()
            except Exception as e:
                raise StorageError(
                    f"Cannot connect to ChromaDB at {self.host}:{self.port}. "
                    f"Ensure ChromaDB is running. Error: {e}"
                ) from e

            self._client = client
            logger.info(f"Connected to ChromaDB at {self.host}:{self.port}")

        return self._client

    def health_check(self) -> dict:
        """
        Check ChromaDB connectivity.

        Returns:
            Dict with status, latency and optional error message
        """
        try:
            client = self.get_client()
            start_time = time.time()
            client.heartbeat()
            latency_ms = int((time.time() - start_time) * 1000)
            return {"status": "healthy", "host": self.host, "port": self.port, "latency_ms": latency_ms}
        except Exception as e:
            return {"status": "unhealthy", "host": self.host, "port": self.port, "error": str(e)}

    def close(self):
        """Drop the cached client."""
        if self._client is not None:
            self._client = None
            logger.info("ChromaDB client closed")
