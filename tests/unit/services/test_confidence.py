"""Unit tests for confidence classification and evaluation."""

import pytest

from chat_recall.services.confidence import (
    ConfidenceEvaluator,
    calculate_gap,
    classify_confidence,
    describe_confidence,
    has_full_text_match,
)
from chat_recall.storage.models import ConfidenceTier
from conftest import make_fragment


# ============================================================================
# Best-Score Classification
# ============================================================================

@pytest.mark.parametrize("score,expected", [
    (0.90, ConfidenceTier.HIGH),
    (0.51, ConfidenceTier.HIGH),
    (0.50, ConfidenceTier.MEDIUM),
    (0.36, ConfidenceTier.MEDIUM),
    (0.35, ConfidenceTier.LOW),
    (0.26, ConfidenceTier.LOW),
    (0.25, ConfidenceTier.NONE),
    (0.0, ConfidenceTier.NONE),
])
def test_classify_thresholds(score, expected):
    """Thresholds are strict: a score equal to a boundary falls below it."""
    assert classify_confidence(score) is expected


def test_classify_no_results():
    assert classify_confidence(None) is ConfidenceTier.NONE


def test_classify_is_monotonic():
    scores = [i / 100 for i in range(101)]
    tiers = [classify_confidence(s) for s in scores]
    for lower, higher in zip(tiers, tiers[1:]):
        assert lower.rank <= higher.rank


def test_describe_confidence():
    assert describe_confidence(ConfidenceTier.HIGH, 0.6789) == "Strong match (sim=0.679)"


def test_tier_ordering():
    assert ConfidenceTier.NONE < ConfidenceTier.LOW < ConfidenceTier.MEDIUM < ConfidenceTier.HIGH


# ============================================================================
# Score Shape Signals
# ============================================================================

def test_gap_uses_fifth_result():
    fragments = [make_fragment(i, s) for i, s in enumerate([0.8, 0.7, 0.6, 0.5, 0.4, 0.1])]
    assert calculate_gap(fragments) == pytest.approx(0.4)


def test_gap_uses_last_when_fewer_than_five():
    fragments = [make_fragment(1, 0.6), make_fragment(2, 0.5)]
    assert calculate_gap(fragments) == pytest.approx(0.1)


def test_gap_single_result():
    assert calculate_gap([make_fragment(1, 0.6)]) is None


def test_full_text_match():
    fragments = [
        make_fragment(1, 0.3, text="Lunch at noon"),
        make_fragment(2, 0.3, text="The Lisbon trip is booked for June"),
    ]
    assert has_full_text_match("when is the Lisbon trip?", fragments)
    assert not has_full_text_match("when is the Porto trip?", fragments)


def test_full_text_match_without_terms():
    assert not has_full_text_match("who is it?", [make_fragment(1, 0.5, text="who is it")])


# ============================================================================
# Evaluator
# ============================================================================

@pytest.fixture
def evaluator():
    return ConfidenceEvaluator()


def test_evaluator_full_text_high(evaluator):
    tier, reason = evaluator.evaluate(0.55, 0.0, True)
    assert tier is ConfidenceTier.HIGH
    assert "Exact word match" in reason


def test_evaluator_full_text_medium(evaluator):
    tier, _ = evaluator.evaluate(0.40, 0.0, True)
    assert tier is ConfidenceTier.MEDIUM


def test_evaluator_full_text_low(evaluator):
    tier, _ = evaluator.evaluate(0.20, 0.0, True)
    assert tier is ConfidenceTier.LOW


def test_evaluator_high_needs_clear_winner(evaluator):
    assert evaluator.evaluate(0.60, 0.10, False)[0] is ConfidenceTier.HIGH
    assert evaluator.evaluate(0.60, 0.01, False)[0] is ConfidenceTier.MEDIUM


def test_evaluator_single_hit_counts_as_clear_winner(evaluator):
    tier, reason = evaluator.evaluate(0.68, None, False)
    assert tier is ConfidenceTier.HIGH
    assert "gap=n/a" in reason


def test_evaluator_standout_result(evaluator):
    assert evaluator.evaluate(0.37, 0.04, False)[0] is ConfidenceTier.MEDIUM
    assert evaluator.evaluate(0.37, 0.01, False)[0] is ConfidenceTier.LOW


def test_evaluator_none(evaluator):
    tier, reason = evaluator.evaluate(0.10, 0.0, False)
    assert tier is ConfidenceTier.NONE
    assert "No relevant matches" in reason


def test_evaluate_fragments(evaluator):
    fragments = [make_fragment(1, 0.68, text="Alice moved to Berlin in March")]
    tier, reason, gap, full_text = evaluator.evaluate_fragments("where does Alice live now?", fragments)

    assert tier is ConfidenceTier.HIGH
    assert gap is None
    assert full_text is False


def test_evaluate_fragments_empty(evaluator):
    tier, reason, gap, full_text = evaluator.evaluate_fragments("anything", [])
    assert tier is ConfidenceTier.NONE
    assert gap is None
