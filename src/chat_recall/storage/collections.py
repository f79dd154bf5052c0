"""ChromaDB collections and the index/store adapters built on them."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from chromadb import Collection
from chromadb.api import ClientAPI

from chat_recall.services.embedding_service import EmbeddingService
from chat_recall.storage.chroma_client import ChromaClientManager
from chat_recall.storage.models import ContextMessage, Fragment, MessageFilter
from chat_recall.utils.errors import RetrievalError, StorageError
from chat_recall.utils.text import is_bulk_content


logger = logging.getLogger("chat-recall.storage")

DEFAULT_MESSAGE_COLLECTION = "chat_messages"
DEFAULT_WINDOW_COLLECTION = "chat_windows"


def get_message_collection(client: ClientAPI, name: str = DEFAULT_MESSAGE_COLLECTION) -> Collection:
    """
    Get or create the per-message collection.

    Args:
        client: ChromaDB client
        name: Collection name

    Returns:
        Message collection instance
    """
    return client.get_or_create_collection(
        name=name,
        embedding_function=None,  # Embeddings are always supplied by the caller
        metadata={
            "description": "One vector per chat message chunk or question variant",
            "hnsw:space": "cosine"
        }
    )


def get_window_collection(client: ClientAPI, name: str = DEFAULT_WINDOW_COLLECTION) -> Collection:
    """
    Get or create the sliding-window collection.

    Args:
        client: ChromaDB client
        name: Collection name

    Returns:
        Window collection instance
    """
    return client.get_or_create_collection(
        name=name,
        embedding_function=None,
        metadata={
            "description": "One vector per run of consecutive messages",
            "hnsw:space": "cosine"
        }
    )


def distance_to_similarity(distance: Optional[float]) -> float:
    """Cosine distance to similarity, clamped to [0, 1]."""
    if distance is None:
        return 0.0
    return min(max(1.0 - float(distance), 0.0), 1.0)


def build_where(conditions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Combine equality/range conditions; Chroma rejects single-item $and."""
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def build_message_where(chat_id: int, filters: Optional[MessageFilter] = None) -> Dict[str, Any]:
    """
    Where clause for message-index lookups.

    A participant matches either the lower-cased username or the display
    name stored as the author.
    """
    conditions: List[Dict[str, Any]] = [{"chat_id": chat_id}]

    if filters is not None:
        if filters.participant:
            conditions.append({"$or": [
                {"participant": filters.participant.lower()},
                {"author": filters.participant}
            ]})
        if filters.since is not None:
            conditions.append({"sent_at": {"$gte": int(filters.since.timestamp())}})

    return build_where(conditions)


def parse_message_ids(raw: Any) -> List[int]:
    """Window metadata stores member ids as a comma-separated string."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return [int(v) for v in raw]
    return [int(v) for v in str(raw).split(",") if v.strip()]


def _bulk_flag(document: Optional[str], metadata: Dict[str, Any]) -> bool:
    """Indexed flag when present, otherwise detect from the text."""
    if "is_bulk" in metadata:
        return bool(metadata["is_bulk"])
    return is_bulk_content(document or "")


def message_fragment(document: Optional[str], metadata: Dict[str, Any], distance: Optional[float]) -> Fragment:
    return Fragment(
        chat_id=int(metadata["chat_id"]),
        message_id=int(metadata["message_id"]),
        text=document or "",
        similarity=distance_to_similarity(distance),
        distance=float(distance) if distance is not None else 1.0,
        chunk_index=int(metadata.get("chunk_index", 0)),
        is_question_variant=bool(metadata.get("is_question", False)),
        is_bulk_content=_bulk_flag(document, metadata),
        metadata=dict(metadata)
    )


def window_fragment(document: Optional[str], metadata: Dict[str, Any], distance: Optional[float]) -> Fragment:
    """Dialog windows are never bulk content; only single messages are penalized."""
    meta = dict(metadata)
    meta["message_ids"] = parse_message_ids(metadata.get("message_ids"))
    return Fragment(
        chat_id=int(metadata["chat_id"]),
        message_id=int(metadata["center_message_id"]),
        text=document or "",
        similarity=distance_to_similarity(distance),
        distance=float(distance) if distance is not None else 1.0,
        is_window=True,
        is_bulk_content=False,
        metadata=meta
    )


def context_message(document: Optional[str], metadata: Dict[str, Any]) -> ContextMessage:
    return ContextMessage(
        message_id=int(metadata["message_id"]),
        chat_id=int(metadata["chat_id"]),
        author=str(metadata.get("author") or metadata.get("participant") or "unknown"),
        text=document or "",
        sent_at=datetime.fromtimestamp(int(metadata.get("sent_at", 0)), tz=timezone.utc)
    )


class ChromaSimilarityIndex:
    """
    SimilarityIndex over the message and window collections.

    Chroma's client is synchronous; calls are pushed to a worker thread so
    concurrent lookups actually overlap. Lookups running at the same time
    for the same query share one embedding call; nothing is kept once that
    call finishes.
    """

    def __init__(
        self,
        client_manager: ChromaClientManager,
        embedding_service: EmbeddingService,
        message_collection: str = DEFAULT_MESSAGE_COLLECTION,
        window_collection: str = DEFAULT_WINDOW_COLLECTION
    ):
        self.client_manager = client_manager
        self.embedding_service = embedding_service
        self.message_collection = message_collection
        self.window_collection = window_collection
        self._pending_embeddings: Dict[str, asyncio.Future] = {}

    async def search_messages(
        self,
        chat_id: int,
        query: str,
        filters: Optional[MessageFilter] = None,
        limit: int = 10
    ) -> List[Fragment]:
        embedding = await self._embed(query)
        where = build_message_where(chat_id, filters)
        return await asyncio.to_thread(self._query_messages, embedding, where, limit)

    async def search_windows(self, chat_id: int, query: str, limit: int = 10) -> List[Fragment]:
        embedding = await self._embed(query)
        return await asyncio.to_thread(self._query_windows, embedding, {"chat_id": chat_id}, limit)

    async def get_windows_for_messages(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        limit: int = 5
    ) -> List[Fragment]:
        if not message_ids:
            return []
        where = build_where([
            {"chat_id": chat_id},
            {"center_message_id": {"$in": [int(m) for m in message_ids]}}
        ])
        return await asyncio.to_thread(self._get_windows, where, limit)

    async def _embed(self, query: str) -> List[float]:
        pending = self._pending_embeddings.get(query)
        if pending is None:
            pending = asyncio.ensure_future(asyncio.to_thread(self.embedding_service.embed_query, query))
            self._pending_embeddings[query] = pending
            pending.add_done_callback(lambda done: self._forget_embedding(query, done))
        return await asyncio.shield(pending)

    def _forget_embedding(self, query: str, done: asyncio.Future):
        if self._pending_embeddings.get(query) is done:
            del self._pending_embeddings[query]

    def _query_messages(self, embedding: List[float], where: Dict[str, Any], limit: int) -> List[Fragment]:
        try:
            collection = get_message_collection(self.client_manager.get_client(), self.message_collection)
            results = collection.query(
                query_embeddings=[embedding],
                n_results=limit,
                where=where,
                include=["documents", "metadatas", "distances"]
            )
        except StorageError:
            raise
        except Exception as e:
            raise RetrievalError(f"Message search failed: {e}") from e

        return self._to_fragments(results, message_fragment)

    def _query_windows(self, embedding: List[float], where: Dict[str, Any], limit: int) -> List[Fragment]:
        try:
            collection = get_window_collection(self.client_manager.get_client(), self.window_collection)
            results = collection.query(
                query_embeddings=[embedding],
                n_results=limit,
                where=where,
                include=["documents", "metadatas", "distances"]
            )
        except StorageError:
            raise
        except Exception as e:
            raise RetrievalError(f"Window search failed: {e}") from e

        return self._to_fragments(results, window_fragment)

    def _get_windows(self, where: Dict[str, Any], limit: int) -> List[Fragment]:
        try:
            collection = get_window_collection(self.client_manager.get_client(), self.window_collection)
            results = collection.get(where=where, limit=limit, include=["documents", "metadatas"])
        except StorageError:
            raise
        except Exception as e:
            raise RetrievalError(f"Window lookup failed: {e}") from e

        documents = results.get("documents") or []
        metadatas = results.get("metadatas") or []
        # Similarity is assigned by the caller for looked-up windows
        return [window_fragment(doc, meta, None) for doc, meta in zip(documents, metadatas)]

    @staticmethod
    def _to_fragments(results: Dict[str, Any], build) -> List[Fragment]:
        if not results.get("ids") or not results["ids"][0]:
            return []

        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]

        fragments = [build(doc, meta, dist) for doc, meta, dist in zip(documents, metadatas, distances)]
        fragments.sort(key=lambda f: f.similarity, reverse=True)
        return fragments


class ChromaMessageStore:
    """
    MessageStore reading ordered history from the message collection.

    Neighbors are resolved through the per-chat ``seq`` counter on each
    message's first original-text chunk.
    """

    def __init__(self, client_manager: ChromaClientManager, collection_name: str = DEFAULT_MESSAGE_COLLECTION):
        self.client_manager = client_manager
        self.collection_name = collection_name

    async def get_neighbors(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        radius: int
    ) -> Dict[int, List[ContextMessage]]:
        if not message_ids:
            return {}
        return await asyncio.to_thread(self._get_neighbors, chat_id, [int(m) for m in message_ids], radius)

    def _get_neighbors(self, chat_id: int, message_ids: List[int], radius: int) -> Dict[int, List[ContextMessage]]:
        try:
            collection = get_message_collection(self.client_manager.get_client(), self.collection_name)

            centers = collection.get(
                where=self._primary_where(chat_id, {"message_id": {"$in": message_ids}}),
                include=["metadatas"]
            )
            seq_by_id: Dict[int, int] = {}
            for meta in centers.get("metadatas") or []:
                seq_by_id[int(meta["message_id"])] = int(meta["seq"])

            if not seq_by_id:
                return {}

            wanted = sorted({
                seq + offset
                for seq in seq_by_id.values()
                for offset in range(-radius, radius + 1)
            })
            rows = collection.get(
                where=self._primary_where(chat_id, {"seq": {"$in": wanted}}),
                include=["documents", "metadatas"]
            )
        except StorageError:
            raise
        except Exception as e:
            raise RetrievalError(f"Neighbor lookup failed for chat {chat_id}: {e}") from e

        by_seq: Dict[int, ContextMessage] = {}
        for doc, meta in zip(rows.get("documents") or [], rows.get("metadatas") or []):
            by_seq[int(meta["seq"])] = context_message(doc, meta)

        neighbors: Dict[int, List[ContextMessage]] = {}
        for message_id, seq in seq_by_id.items():
            window = [by_seq[s] for s in range(seq - radius, seq + radius + 1) if s in by_seq]
            if window:
                neighbors[message_id] = window

        missing = set(message_ids) - set(neighbors)
        if missing:
            logger.debug(f"Neighbor lookup: {len(missing)} ids not found in chat {chat_id}")

        return neighbors

    @staticmethod
    def _primary_where(chat_id: int, condition: Dict[str, Any]) -> Dict[str, Any]:
        return build_where([
            {"chat_id": chat_id},
            {"chunk_index": 0},
            {"is_question": False},
            condition
        ])
