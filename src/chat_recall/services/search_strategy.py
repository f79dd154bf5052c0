"""Hybrid message/window search strategies."""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, List, Optional, Tuple, TypeVar

from chat_recall.constants import (
    DEFAULT_LOOKBACK_DAYS,
    GENERAL_MESSAGE_FACTOR,
    GENERAL_WINDOW_FACTOR,
    INFERRED_WINDOW_DISTANCE,
    INFERRED_WINDOW_SIMILARITY,
    PERSONAL_EXPANSION_COUNT,
    PERSONAL_SEARCH_LIMIT,
    PERSONAL_WINDOW_FACTOR,
    SEARCH_LIMIT,
)
from chat_recall.services.confidence import (
    ConfidenceEvaluator,
    classify_confidence,
    describe_confidence,
)
from chat_recall.services.merge import WeightedSource, merge_weighted
from chat_recall.storage.interfaces import SimilarityIndex
from chat_recall.storage.models import Fragment, MessageFilter, SearchResponse


logger = logging.getLogger("chat-recall.search")

T1 = TypeVar("T1")
T2 = TypeVar("T2")


async def gather_both(first: Awaitable[T1], second: Awaitable[T2]) -> Tuple[T1, T2]:
    """
    Run two lookups concurrently and wait for both.

    If either fails, the other is cancelled and the original error is
    re-raised unchanged.
    """
    tasks = [asyncio.ensure_future(first), asyncio.ensure_future(second)]
    try:
        first_result, second_result = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        raise
    return first_result, second_result


class SearchStrategy:
    """
    Personal and general retrieval over the message and window indexes.

    Each entry point fans out to two concurrent, stateless lookups and
    merges them with per-source discount factors. No retries and no caching:
    the chat grows continuously, so every query is answered fresh.
    """

    def __init__(self, index: SimilarityIndex, evaluator: Optional[ConfidenceEvaluator] = None):
        """
        Initialize search strategy.

        Args:
            index: Similarity index capability
            evaluator: Confidence evaluator for participant-restricted hits
        """
        self.index = index
        self.evaluator = evaluator or ConfidenceEvaluator()

    async def personal_search(
        self,
        chat_id: int,
        participant: str,
        query: str,
        lookback_days: Optional[int] = None
    ) -> SearchResponse:
        """
        Search for a question about one participant.

        The participant's own messages are searched alongside the window
        index, since they may appear inside a dialog someone else started.
        The top personal hits are then expanded into their indexed windows.

        Args:
            chat_id: Chat to search
            participant: Username or display name (leading "@" ignored)
            query: Normalized question
            lookback_days: How far back to look for the participant's messages

        Returns:
            Merged SearchResponse

        Raises:
            Any error raised by the similarity index, unchanged
        """
        participant = participant.lstrip("@").strip()
        days = lookback_days if lookback_days is not None else DEFAULT_LOOKBACK_DAYS
        filters = MessageFilter(
            participant=participant,
            since=datetime.now(timezone.utc) - timedelta(days=days)
        )

        start_time = time.time()

        personal_hits, window_hits = await gather_both(
            self.index.search_messages(chat_id, query, filters=filters, limit=PERSONAL_SEARCH_LIMIT),
            self.index.search_windows(chat_id, query, limit=SEARCH_LIMIT)
        )

        sources: List[WeightedSource] = []
        inferred_windows: List[Fragment] = []

        if personal_hits:
            top_ids = [
                f.message_id
                for f in sorted(personal_hits, key=lambda f: f.similarity, reverse=True)[:PERSONAL_EXPANSION_COUNT]
            ]
            inferred_windows = await self.index.get_windows_for_messages(
                chat_id, top_ids, limit=PERSONAL_EXPANSION_COUNT
            )
            sources.append(WeightedSource("personal", personal_hits))
            sources.append(WeightedSource(
                "inferred_windows",
                inferred_windows,
                fixed_similarity=INFERRED_WINDOW_SIMILARITY,
                fixed_distance=INFERRED_WINDOW_DISTANCE,
                as_window=True
            ))

        sources.append(WeightedSource("windows", window_hits, factor=PERSONAL_WINDOW_FACTOR, as_window=True))

        merged = merge_weighted(sources)
        latency_ms = int((time.time() - start_time) * 1000)
        context_count = len(inferred_windows) + len(window_hits)

        logger.info(
            f"Personal search: participant={participant}, results={len(merged)} "
            f"({len(personal_hits)} personal + {context_count} context), latency={latency_ms}ms"
        )

        if not merged:
            return SearchResponse.empty(f"Participant {participant} not found in history")

        best_score = merged[0].similarity

        if personal_hits:
            tier, reason, gap, full_text = self.evaluator.evaluate_fragments(query, personal_hits)
            return SearchResponse(
                results=merged,
                confidence=tier,
                confidence_reason=f"[Hybrid: {len(personal_hits)} personal + {context_count} context] {reason}",
                best_score=best_score,
                score_gap=gap,
                has_full_text_match=full_text
            )

        tier = classify_confidence(best_score)
        return SearchResponse(
            results=merged,
            confidence=tier,
            confidence_reason=f"[Context-only: {len(window_hits)} windows] {describe_confidence(tier, best_score)}",
            best_score=best_score
        )

    async def general_search(self, chat_id: int, query: str) -> SearchResponse:
        """
        Search for a question about the conversation as a whole.

        Window hits carry full dialog context and keep their similarity;
        bare message hits are discounted.

        Args:
            chat_id: Chat to search
            query: Normalized question

        Returns:
            Merged SearchResponse

        Raises:
            Any error raised by the similarity index, unchanged
        """
        start_time = time.time()

        window_hits, message_hits = await gather_both(
            self.index.search_windows(chat_id, query, limit=SEARCH_LIMIT),
            self.index.search_messages(chat_id, query, limit=SEARCH_LIMIT)
        )

        merged = merge_weighted([
            WeightedSource("windows", window_hits, factor=GENERAL_WINDOW_FACTOR, as_window=True),
            WeightedSource("messages", message_hits, factor=GENERAL_MESSAGE_FACTOR),
        ])
        latency_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"General search: results={len(merged)} ({len(window_hits)} windows + "
            f"{len(message_hits)} messages), latency={latency_ms}ms"
        )

        if not merged:
            return SearchResponse.empty("No indexed fragments matched the question")

        best_score = merged[0].similarity
        tier = classify_confidence(best_score)

        return SearchResponse(
            results=merged,
            confidence=tier,
            confidence_reason=f"[Hybrid: {len(window_hits)}+{len(message_hits)}] {describe_confidence(tier, best_score)}",
            best_score=best_score
        )
