"""Pytest configuration and shared fixtures."""

import logging
import pytest
import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, MagicMock
from typing import Dict, List, Optional, Sequence

# Add src directory to Python path for imports
SRC_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from chat_recall.storage.models import (  # noqa: E402
    ContextMessage,
    Fragment,
    LlmResponse,
    MessageFilter,
    TokenUsage,
)


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set required environment variables for all tests."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-api-key-12345")
    monkeypatch.setenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("OPENAI_EMBED_MODEL", "text-embedding-3-large")
    monkeypatch.setenv("OPENAI_EMBED_DIMS", "3072")
    monkeypatch.setenv("CHROMA_HOST", "localhost")
    monkeypatch.setenv("CHROMA_PORT", "8001")
    for name in (
        "OPENAI_TIMEOUT",
        "OPENAI_MAX_RETRIES",
        "MESSAGE_COLLECTION",
        "WINDOW_COLLECTION",
        "DEFAULT_LOOKBACK_DAYS",
        "SYSTEM_PROMPT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging() so handlers never outlive a captured stream."""
    yield
    logger = logging.getLogger("chat-recall")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config():
    """Create a test configuration object."""
    from chat_recall.config import Config
    return Config(
        openai_api_key="test-api-key-12345",
        openai_chat_model="gpt-4o-mini",
        openai_embed_model="text-embedding-3-large",
        openai_embed_dims=3072,
        openai_timeout=30,
        openai_max_retries=3,
        chroma_host="localhost",
        chroma_port=8001,
        message_collection="chat_messages",
        window_collection="chat_windows",
        default_lookback_days=7,
        system_prompt="You are a test persona.",
        log_level="INFO"
    )


# ============================================================================
# OpenAI Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client for testing."""
    mock_client = MagicMock()

    mock_embedding_data = Mock()
    mock_embedding_data.embedding = [0.1] * 3072

    mock_response = Mock()
    mock_response.data = [mock_embedding_data]

    mock_client.embeddings.create.return_value = mock_response

    return mock_client


# ============================================================================
# ChromaDB Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_chroma_collection():
    """Mock ChromaDB collection for testing."""
    mock_collection = MagicMock()
    mock_collection.name = "test_collection"
    mock_collection.query.return_value = {
        "ids": [[]],
        "documents": [[]],
        "metadatas": [[]],
        "distances": [[]]
    }
    mock_collection.get.return_value = {
        "ids": [],
        "documents": [],
        "metadatas": []
    }
    return mock_collection


@pytest.fixture
def mock_chroma_client(mock_chroma_collection):
    """Mock ChromaDB client for testing."""
    mock_client = MagicMock()
    mock_client.heartbeat.return_value = True
    mock_client.get_or_create_collection.return_value = mock_chroma_collection
    return mock_client


@pytest.fixture
def mock_client_manager(mock_chroma_client):
    """ChromaClientManager stand-in returning the mock client."""
    manager = MagicMock()
    manager.get_client.return_value = mock_chroma_client
    return manager


# ============================================================================
# In-memory capability fakes
# ============================================================================

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_fragment(
    message_id: int,
    similarity: float,
    text: Optional[str] = None,
    chat_id: int = 1,
    **kwargs
) -> Fragment:
    """Build a Fragment with sensible defaults."""
    return Fragment(
        chat_id=chat_id,
        message_id=message_id,
        text=f"message {message_id}" if text is None else text,
        similarity=similarity,
        distance=1.0 - similarity,
        **kwargs
    )


def make_message(message_id: int, text: str, author: str = "alice", chat_id: int = 1) -> ContextMessage:
    """Build a ContextMessage; sent_at follows message id order."""
    return ContextMessage(
        message_id=message_id,
        chat_id=chat_id,
        author=author,
        text=text,
        sent_at=BASE_TIME + timedelta(minutes=message_id)
    )


class FakeSimilarityIndex:
    """SimilarityIndex returning canned results and recording calls."""

    def __init__(
        self,
        message_hits: Optional[List[Fragment]] = None,
        window_hits: Optional[List[Fragment]] = None,
        personal_hits: Optional[List[Fragment]] = None,
        windows_by_center: Optional[Dict[int, Fragment]] = None
    ):
        self.message_hits = message_hits or []
        self.window_hits = window_hits or []
        self.personal_hits = personal_hits or []
        self.windows_by_center = windows_by_center or {}
        self.message_error: Optional[BaseException] = None
        self.window_error: Optional[BaseException] = None
        self.calls: List[tuple] = []

    async def search_messages(self, chat_id, query, filters: Optional[MessageFilter] = None, limit=10):
        self.calls.append(("messages", chat_id, query, filters, limit))
        if self.message_error is not None:
            raise self.message_error
        if filters is not None and filters.participant:
            return list(self.personal_hits)[:limit]
        return list(self.message_hits)[:limit]

    async def search_windows(self, chat_id, query, limit=10):
        self.calls.append(("windows", chat_id, query, limit))
        if self.window_error is not None:
            raise self.window_error
        return list(self.window_hits)[:limit]

    async def get_windows_for_messages(self, chat_id, message_ids: Sequence[int], limit=5):
        self.calls.append(("windows_for", chat_id, list(message_ids), limit))
        found = [self.windows_by_center[m] for m in message_ids if m in self.windows_by_center]
        return found[:limit]


class FakeMessageStore:
    """MessageStore over an ordered in-memory list of messages."""

    def __init__(self, messages: Optional[List[ContextMessage]] = None):
        self.messages = list(messages or [])
        self.calls: List[tuple] = []

    async def get_neighbors(self, chat_id, message_ids, radius):
        self.calls.append((chat_id, list(message_ids), radius))
        ordered = [m for m in self.messages if m.chat_id == chat_id]
        positions = {m.message_id: i for i, m in enumerate(ordered)}
        result = {}
        for message_id in message_ids:
            if message_id not in positions:
                continue
            i = positions[message_id]
            result[message_id] = ordered[max(0, i - radius):i + radius + 1]
        return result


class FakeLanguageModel:
    """LanguageModel replaying scripted responses and recording prompts."""

    def __init__(self, responses: Optional[List[str]] = None, error: Optional[BaseException] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[Dict] = []

    async def complete(self, system_prompt, user_prompt, temperature):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature
        })
        if self.error is not None:
            raise self.error
        content = self.responses.pop(0) if self.responses else "default answer"
        return LlmResponse(
            content=content,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5),
            provider_id="fake"
        )


class FakeExternalKnowledge:
    def __init__(self, answer: Optional[str]):
        self.answer = answer
        self.questions: List[str] = []

    async def lookup(self, question):
        self.questions.append(question)
        return self.answer

