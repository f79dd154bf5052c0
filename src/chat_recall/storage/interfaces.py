"""
Capabilities the retrieval pipeline consumes.

The pipeline never talks to a vector store, database or model provider
directly; it goes through these protocols. Reference implementations live
in ``storage.collections`` (ChromaDB) and ``services.llm_service`` (OpenAI).
"""

from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from chat_recall.storage.models import ContextMessage, Fragment, LlmResponse, MessageFilter


@runtime_checkable
class SimilarityIndex(Protocol):
    """Message-level and window-level similarity search over one chat."""

    async def search_messages(
        self,
        chat_id: int,
        query: str,
        filters: Optional[MessageFilter] = None,
        limit: int = 10
    ) -> List[Fragment]:
        """Search the per-message index. Sorted by similarity, unthresholded."""
        ...

    async def search_windows(self, chat_id: int, query: str, limit: int = 10) -> List[Fragment]:
        """Search the sliding-window index. Sorted by similarity, unthresholded."""
        ...

    async def get_windows_for_messages(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        limit: int = 5
    ) -> List[Fragment]:
        """Fetch indexed windows centered on the given message ids."""
        ...


@runtime_checkable
class MessageStore(Protocol):
    """Ordered chat history used to expand hits into windows."""

    async def get_neighbors(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        radius: int
    ) -> Dict[int, List[ContextMessage]]:
        """
        Return each message with ``radius`` neighbors on either side.

        One batched call for all ids. Ids unknown to the store are absent
        from the result. Must be idempotent and side-effect free.
        """
        ...


@runtime_checkable
class LanguageModel(Protocol):
    """Black-box completion capability with no retry contract."""

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> LlmResponse:
        ...


@runtime_checkable
class ExternalKnowledge(Protocol):
    """Optional knowledge source used when chat history has no match."""

    async def lookup(self, question: str) -> Optional[str]:
        ...
