"""
Context assembly from merged search results.

Expands bare message hits into dialog windows, merges them with hits that
are already window-shaped, and packs the result into a character budget.
No retrieval or generation decisions - pure assembly logic.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from chat_recall.constants import (
    CONTEXT_CHAR_BUDGET,
    CONTEXT_TOP_K,
    CONTEXT_WINDOW_RADIUS,
    FRAGMENT_SEPARATOR_OVERHEAD,
)
from chat_recall.storage.interfaces import MessageStore
from chat_recall.storage.models import (
    AssembledContext,
    ContextMessage,
    ContextTracker,
    ContextWindow,
    Fragment,
    InclusionReason,
)


logger = logging.getLogger("chat-recall.context")

CONTEXT_HEADER = "Chat context (messages grouped by dialog):\n\n"


@dataclass
class _Candidate:
    """One block competing for the context budget."""
    similarity: float
    message_ids: List[int]
    raw_text: Optional[str] = None
    window: Optional[ContextWindow] = None
    fallback: bool = False
    covered_ids: Set[int] = field(default_factory=set)

    @property
    def text(self) -> str:
        if self.window is not None:
            return self.window.formatted_text
        return self.raw_text or ""


@dataclass
class _ExpansionPlan:
    candidates: List[_Candidate] = field(default_factory=list)
    fallback_count: int = 0


def merge_windows(first: ContextWindow, second: ContextWindow) -> ContextWindow:
    """Combine two overlapping windows, keeping the first one's center and every match."""
    by_id: Dict[int, ContextMessage] = {}
    for message in list(first.messages) + list(second.messages):
        by_id.setdefault(message.message_id, message)
    ordered = sorted(by_id.values(), key=lambda m: (m.sent_at, m.message_id))
    matched = {first.center_message_id, second.center_message_id} | first.matched_ids | second.matched_ids
    return ContextWindow(center_message_id=first.center_message_id, messages=ordered, matched_ids=matched)


def window_member_ids(fragment: Fragment) -> Set[int]:
    """Ids a window-shaped hit already shows, including its center."""
    members = fragment.metadata.get("message_ids") or []
    if not isinstance(members, (list, tuple)):
        members = []
    return {int(m) for m in members} | {fragment.message_id}


class ContextAssembler:
    """
    Assembles a budget-bounded chat context for answer generation.

    Candidates are walked strictly in similarity order. A candidate that
    does not fit is skipped, not fatal: later, smaller candidates still get
    a chance at the remaining budget, but never ahead of better ones.
    """

    def __init__(
        self,
        message_store: MessageStore,
        char_budget: int = CONTEXT_CHAR_BUDGET,
        top_k: int = CONTEXT_TOP_K,
        window_radius: int = CONTEXT_WINDOW_RADIUS
    ):
        """
        Initialize context assembler.

        Args:
            message_store: Message store used for window expansion
            char_budget: Maximum characters in the assembled context
            top_k: Number of top results considered
            window_radius: Neighbors on each side of an expanded hit

        Raises:
            ValueError: If parameters are invalid
        """
        if char_budget < 1:
            raise ValueError(f"char_budget must be >= 1, got {char_budget}")
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        if window_radius < 0:
            raise ValueError(f"window_radius must be >= 0, got {window_radius}")

        self.message_store = message_store
        self.char_budget = char_budget
        self.top_k = top_k
        self.window_radius = window_radius

    async def assemble(self, chat_id: int, results: Sequence[Fragment]) -> AssembledContext:
        """
        Build the context string for merged search results.

        Args:
            chat_id: Chat the results belong to
            results: Merged, deduplicated search results

        Returns:
            AssembledContext with text and per-message decisions

        Raises:
            Any error raised by the message store, unchanged
        """
        tracker = ContextTracker()

        if not results:
            return AssembledContext(text="", tracker=tracker)

        non_empty = []
        for result in results:
            if result.text and result.text.strip():
                non_empty.append(result)
            else:
                tracker.record(result.message_id, False, InclusionReason.EMPTY_TEXT)

        ranked = sorted(non_empty, key=lambda f: f.similarity, reverse=True)
        top = ranked[:self.top_k]
        tracker.exclude_all([f.message_id for f in ranked[self.top_k:]], InclusionReason.NOT_IN_TOP_K)

        window_hits = [f for f in top if f.is_window]
        bare_hits = [f for f in top if not f.is_window]

        logger.debug(
            f"Assembling context: {len(window_hits)} window hits + "
            f"{len(bare_hits)} messages to expand (radius={self.window_radius})"
        )

        window_candidates = [
            _Candidate(
                similarity=f.similarity,
                message_ids=[f.message_id],
                raw_text=f.text,
                covered_ids=window_member_ids(f)
            )
            for f in window_hits
        ]
        plan = await self._expand(chat_id, bare_hits, window_candidates)

        candidates = window_candidates + plan.candidates
        # Stable sort: ties keep window hits ahead of expansions
        candidates.sort(key=lambda c: c.similarity, reverse=True)

        return self._pack(candidates, tracker, expanded_count=len(plan.candidates))

    def assemble_no_context(
        self,
        results: Sequence[Fragment],
        reason: InclusionReason = InclusionReason.SMART_NO_CONTEXT
    ) -> AssembledContext:
        """Mark every result excluded without building anything."""
        tracker = ContextTracker()
        tracker.exclude_all([f.message_id for f in results], reason)
        return AssembledContext(text="", tracker=tracker)

    async def _expand(
        self,
        chat_id: int,
        hits: List[Fragment],
        window_candidates: List[_Candidate]
    ) -> _ExpansionPlan:
        """
        Expand bare hits into windows with a single batched store call.

        Hits an indexed window already shows join that window instead.
        Hits missing from the store fall back to their raw fragment text.
        """
        plan = _ExpansionPlan()

        remaining = []
        for hit in hits:
            host = next((c for c in window_candidates if hit.message_id in c.covered_ids), None)
            if host is None:
                remaining.append(hit)
                continue
            host.message_ids.append(hit.message_id)
            host.similarity = max(host.similarity, hit.similarity)
        hits = remaining

        if not hits:
            return plan

        neighbors = await self.message_store.get_neighbors(
            chat_id,
            [f.message_id for f in hits],
            self.window_radius
        )

        for hit in hits:
            messages = neighbors.get(hit.message_id)
            if not messages:
                logger.warning(
                    f"Message {hit.message_id} in chat {chat_id} is indexed but missing "
                    f"from the message store; using raw fragment text"
                )
                plan.fallback_count += 1
                plan.candidates.append(_Candidate(
                    similarity=hit.similarity,
                    message_ids=[hit.message_id],
                    raw_text=hit.text,
                    fallback=True
                ))
                continue

            window = ContextWindow(center_message_id=hit.message_id, messages=list(messages))
            host = self._find_overlap(plan.candidates, window)
            if host is not None:
                # Hits arrive in similarity order, so the host always ranks higher
                host.window = merge_windows(host.window, window)
                host.message_ids.append(hit.message_id)
                continue

            plan.candidates.append(_Candidate(
                similarity=hit.similarity,
                message_ids=[hit.message_id],
                window=window
            ))

        return plan

    @staticmethod
    def _find_overlap(candidates: List[_Candidate], window: ContextWindow) -> Optional[_Candidate]:
        ids = set(window.message_ids)
        for candidate in candidates:
            if candidate.window is not None and ids.intersection(candidate.window.message_ids):
                return candidate
        return None

    def _pack(self, candidates: List[_Candidate], tracker: ContextTracker, expanded_count: int) -> AssembledContext:
        """Walk candidates in order, skipping any that would exceed the budget."""
        parts = [CONTEXT_HEADER]
        used_chars = len(CONTEXT_HEADER)
        included = 0

        for candidate in candidates:
            text = candidate.text
            cost = len(text) + FRAGMENT_SEPARATOR_OVERHEAD

            if used_chars + cost > self.char_budget:
                for message_id in candidate.message_ids:
                    tracker.record(message_id, False, InclusionReason.BUDGET_EXCEEDED, candidate.fallback)
                continue

            included += 1
            if not text.endswith("\n"):
                text += "\n"
            parts.append(f"--- Dialog #{included} ---\n{text}\n")
            used_chars += cost

            for message_id in candidate.message_ids:
                tracker.record(message_id, True, InclusionReason.OK, candidate.fallback)

        if included == 0:
            logger.info(f"Context empty: none of {len(candidates)} candidates fit {self.char_budget} chars")
            return AssembledContext(text="", tracker=tracker)

        context_text = "".join(parts)

        logger.info(
            f"Built context: {included}/{len(candidates)} blocks "
            f"({expanded_count} expanded), {used_chars}/{self.char_budget} chars"
        )

        return AssembledContext(
            text=context_text,
            tracker=tracker,
            included_count=included,
            used_chars=used_chars
        )
