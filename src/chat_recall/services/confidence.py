"""Confidence tier classification for search results."""

import logging
from typing import List, Optional, Sequence, Tuple

from chat_recall.constants import (
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    LOW_CONFIDENCE_THRESHOLD,
    EVALUATOR_HIGH_THRESHOLD,
    EVALUATOR_MEDIUM_THRESHOLD,
    EVALUATOR_STANDOUT_THRESHOLD,
    EVALUATOR_MIN_THRESHOLD,
    SIGNIFICANT_GAP,
    SMALL_GAP,
    GAP_RANK,
)
from chat_recall.storage.models import ConfidenceTier, Fragment
from chat_recall.utils.text import extract_search_terms


logger = logging.getLogger("chat-recall.confidence")


def classify_confidence(best_score: Optional[float]) -> ConfidenceTier:
    """
    Map the best merged similarity to a confidence tier.

    Args:
        best_score: Highest similarity among merged results, or None if empty

    Returns:
        HIGH above 0.5, MEDIUM above 0.35, LOW above 0.25, otherwise NONE
    """
    if best_score is None:
        return ConfidenceTier.NONE
    if best_score > HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceTier.HIGH
    if best_score > MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceTier.MEDIUM
    if best_score > LOW_CONFIDENCE_THRESHOLD:
        return ConfidenceTier.LOW
    return ConfidenceTier.NONE


_TIER_LABELS = {
    ConfidenceTier.HIGH: "Strong match",
    ConfidenceTier.MEDIUM: "Moderate match",
    ConfidenceTier.LOW: "Weak match",
    ConfidenceTier.NONE: "No relevant match",
}


def describe_confidence(tier: ConfidenceTier, best_score: float) -> str:
    """Human-readable justification for a tier."""
    return f"{_TIER_LABELS[tier]} (sim={best_score:.3f})"


def calculate_gap(fragments: Sequence[Fragment]) -> Optional[float]:
    """
    Score gap between the best result and the 5th (or last) one.

    Returns None when there are fewer than two results.
    """
    if len(fragments) < 2:
        return None
    scores = sorted((f.similarity for f in fragments), reverse=True)
    reference = scores[GAP_RANK - 1] if len(scores) >= GAP_RANK else scores[-1]
    return scores[0] - reference


def has_full_text_match(query: str, fragments: Sequence[Fragment]) -> bool:
    """
    Whether some fragment contains every significant query term verbatim.

    Exact wording is a strong signal embeddings may under-score (names,
    slang, rare terms).
    """
    terms = extract_search_terms(query)
    if not terms:
        return False
    for fragment in fragments:
        text = fragment.text.lower()
        if all(term in text for term in terms):
            return True
    return False


class ConfidenceEvaluator:
    """
    Evaluates confidence for a single search branch using score shape.

    Unlike ``classify_confidence`` (best score only), this also looks at
    how far the top hit stands out from the rest and whether the query
    words appear verbatim. Used for participant-restricted message search,
    where the result set is small and the gap is informative.
    """

    def evaluate(
        self,
        best_score: float,
        gap: Optional[float],
        has_full_text: bool
    ) -> Tuple[ConfidenceTier, str]:
        """
        Evaluate confidence from score signals.

        Args:
            best_score: Best similarity in the branch
            gap: Best minus 5th-best similarity; None for a single hit
            has_full_text: Whether query terms matched verbatim

        Returns:
            Tuple of (tier, reason)
        """
        if has_full_text:
            if best_score >= EVALUATOR_HIGH_THRESHOLD:
                return ConfidenceTier.HIGH, f"Exact word match + high similarity (sim={best_score:.2f})"
            if best_score >= EVALUATOR_STANDOUT_THRESHOLD:
                return ConfidenceTier.MEDIUM, f"Exact word match (sim={best_score:.2f})"
            return ConfidenceTier.LOW, f"Words found but semantically distant (sim={best_score:.2f})"

        # A lone hit has nothing to stand out from
        clear_winner = gap is None or gap >= SIGNIFICANT_GAP
        gap_label = "n/a" if gap is None else f"{gap:.2f}"

        if best_score >= EVALUATOR_HIGH_THRESHOLD and clear_winner:
            return ConfidenceTier.HIGH, f"Strong match (sim={best_score:.2f}, gap={gap_label})"

        if best_score >= EVALUATOR_MEDIUM_THRESHOLD:
            return ConfidenceTier.MEDIUM, f"Moderate match (sim={best_score:.2f})"

        if best_score >= EVALUATOR_STANDOUT_THRESHOLD and (gap is None or gap >= SMALL_GAP):
            return ConfidenceTier.MEDIUM, f"Standout result (sim={best_score:.2f}, gap={gap_label})"

        if best_score >= EVALUATOR_MIN_THRESHOLD:
            return ConfidenceTier.LOW, f"Weak match (sim={best_score:.2f})"

        return ConfidenceTier.NONE, f"No relevant matches (best sim={best_score:.2f})"

    def evaluate_fragments(self, query: str, fragments: List[Fragment]) -> Tuple[ConfidenceTier, str, Optional[float], bool]:
        """
        Evaluate a branch's own result list.

        Returns:
            Tuple of (tier, reason, gap, has_full_text)
        """
        if not fragments:
            return ConfidenceTier.NONE, "No results", None, False

        best = max(f.similarity for f in fragments)
        gap = calculate_gap(fragments)
        full_text = has_full_text_match(query, fragments)
        tier, reason = self.evaluate(best, gap, full_text)

        logger.debug(f"Branch confidence: tier={tier.value}, best={best:.3f}, gap={gap}, full_text={full_text}")
        return tier, reason, gap, full_text
