"""Storage module for chat-recall."""

from chat_recall.storage.models import (
    ConfidenceTier,
    CommandType,
    InclusionReason,
    Fragment,
    MessageFilter,
    SearchResponse,
    ContextMessage,
    ContextWindow,
    ContextTracker,
    AskResult
)
from chat_recall.storage.interfaces import (
    SimilarityIndex,
    MessageStore,
    LanguageModel,
    ExternalKnowledge
)
from chat_recall.storage.chroma_client import ChromaClientManager
from chat_recall.storage.collections import (
    ChromaSimilarityIndex,
    ChromaMessageStore,
    get_message_collection,
    get_window_collection
)

__all__ = [
    "ConfidenceTier",
    "CommandType",
    "InclusionReason",
    "Fragment",
    "MessageFilter",
    "SearchResponse",
    "ContextMessage",
    "ContextWindow",
    "ContextTracker",
    "AskResult",
    "SimilarityIndex",
    "MessageStore",
    "LanguageModel",
    "ExternalKnowledge",
    "ChromaClientManager",
    "ChromaSimilarityIndex",
    "ChromaMessageStore",
    "get_message_collection",
    "get_window_collection",
]
