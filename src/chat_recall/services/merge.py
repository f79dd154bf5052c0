"""Weighted multi-source merging and message-level deduplication."""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

from chat_recall.constants import BULK_CONTENT_PENALTY
from chat_recall.storage.models import Fragment


logger = logging.getLogger("chat-recall.merge")


@dataclass(frozen=True)
class WeightedSource:
    """
    One input to a weighted merge.

    Attributes:
        name: Label used in logs
        fragments: Raw fragments from one lookup
        factor: Multiplier applied to each fragment's similarity
        fixed_similarity: If set, replaces similarity outright (inferred hits)
        fixed_distance: Distance paired with ``fixed_similarity``
        as_window: Mark every fragment as already window-shaped
    """
    name: str
    fragments: Sequence[Fragment]
    factor: float = 1.0
    fixed_similarity: Optional[float] = None
    fixed_distance: Optional[float] = None
    as_window: bool = False


def weigh_fragment(fragment: Fragment, source: WeightedSource) -> Fragment:
    """
    Re-score a fragment according to its source.

    Bulk pasted content loses a fixed penalty. Fixed-similarity sources
    are exempt: their score is the tag itself. Scores are clamped to [0, 1].
    """
    if source.fixed_similarity is not None:
        similarity = source.fixed_similarity
    else:
        similarity = fragment.similarity * source.factor
        if fragment.is_bulk_content:
            similarity -= BULK_CONTENT_PENALTY

    similarity = min(max(similarity, 0.0), 1.0)

    changes = {"similarity": similarity}
    if source.fixed_distance is not None:
        changes["distance"] = source.fixed_distance
    if source.as_window:
        changes["is_window"] = True
        changes["chunk_index"] = 0

    return replace(fragment, **changes)


def select_preferred(group: Sequence[Fragment]) -> Fragment:
    """
    Pick the representative fragment for one message.

    Original-text fragments always beat question-variant fragments, whatever
    their scores. Among equals the highest similarity wins, and the winner
    keeps its own score.

    Args:
        group: Fragments sharing a message id (non-empty)

    Returns:
        The preferred fragment, unmodified

    Raises:
        ValueError: If group is empty
    """
    if not group:
        raise ValueError("Cannot select from an empty fragment group")

    originals = [f for f in group if not f.is_question_variant]
    candidates = originals or list(group)

    # max() keeps the first of equal scores, so input order breaks ties
    return max(candidates, key=lambda f: f.similarity)


def merge_fragments(fragments: Iterable[Fragment]) -> List[Fragment]:
    """
    Deduplicate fragments by message id and rank the winners.

    Args:
        fragments: Already-weighted fragments from any number of sources

    Returns:
        One fragment per message id, sorted by similarity descending
    """
    groups: Dict[int, List[Fragment]] = {}
    for fragment in fragments:
        groups.setdefault(fragment.message_id, []).append(fragment)

    winners = [select_preferred(group) for group in groups.values()]
    winners.sort(key=lambda f: f.similarity, reverse=True)
    return winners


def merge_weighted(sources: Sequence[WeightedSource]) -> List[Fragment]:
    """
    Weigh every source's fragments, then deduplicate and rank them.

    Args:
        sources: Lookups with their discount factors

    Returns:
        Merged fragments sorted by similarity descending
    """
    weighted: List[Fragment] = []
    for source in sources:
        weighted.extend(weigh_fragment(f, source) for f in source.fragments)

    merged = merge_fragments(weighted)

    logger.debug(
        "Merged sources: "
        + ", ".join(f"{s.name}={len(s.fragments)}" for s in sources)
        + f" -> {len(merged)} results"
    )
    return merged
