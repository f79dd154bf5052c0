"""Unit tests for AnswerSynthesizer."""

import json

import pytest

from chat_recall.services.answer_synthesizer import (
    FACT_EXTRACTION_PROMPT,
    STRATEGY_SIMPLE,
    STRATEGY_TWO_STAGE,
    AnswerSynthesizer,
    can_use_fast_path,
    parse_answer_facts,
)
from chat_recall.storage.models import ConfidenceTier
from chat_recall.utils.errors import GenerationError
from conftest import FakeLanguageModel


FACTS_JSON = json.dumps({
    "facts": [{"claim": "The trip is in June", "source": "alice", "confidence": "high"}],
    "not_found": ["hotel name"]
})


# ============================================================================
# Fast Path Predicate
# ============================================================================

@pytest.mark.parametrize("chars,tier,expected", [
    (1500, ConfidenceTier.HIGH, True),
    (2000, ConfidenceTier.HIGH, True),
    (2001, ConfidenceTier.HIGH, False),
    (1500, ConfidenceTier.MEDIUM, False),
    (1500, ConfidenceTier.LOW, False),
    (0, ConfidenceTier.NONE, False),
])
def test_can_use_fast_path(chars, tier, expected):
    assert can_use_fast_path(chars, tier) is expected


# ============================================================================
# Stage 1 Parsing
# ============================================================================

def test_parse_answer_facts_plain_json():
    facts = parse_answer_facts(FACTS_JSON)

    assert len(facts.facts) == 1
    assert facts.facts[0].claim == "The trip is in June"
    assert facts.facts[0].source == "alice"
    assert facts.facts[0].confidence == "high"
    assert facts.not_found == ["hotel name"]
    assert facts.has_sufficient_info


def test_parse_answer_facts_markdown_fences():
    facts = parse_answer_facts(f"```json\n{FACTS_JSON}\n```")
    assert len(facts.facts) == 1


def test_parse_answer_facts_surrounding_prose():
    facts = parse_answer_facts(f"Here you go: {FACTS_JSON} Hope that helps.")
    assert len(facts.facts) == 1


@pytest.mark.parametrize("content", [None, "", "not json at all", "{broken", "[1, 2, 3]", "```\n```"])
def test_parse_answer_facts_malformed(content):
    """Malformed Stage 1 output yields empty facts, never an exception."""
    facts = parse_answer_facts(content)

    assert facts.facts == []
    assert facts.not_found == []
    assert not facts.has_sufficient_info


def test_parse_answer_facts_caps_and_cleans():
    payload = {
        "facts": [{"claim": f"fact {i}", "confidence": "certain"} for i in range(8)]
        + [{"claim": "  "}, "string item"],
        "not_found": ["", "budget", 3]
    }
    facts = parse_answer_facts(json.dumps(payload))

    assert len(facts.facts) == 5
    assert all(f.confidence == "medium" for f in facts.facts)
    assert facts.facts[0].source is None
    assert facts.not_found == ["budget"]


# ============================================================================
# Strategy Selection
# ============================================================================

@pytest.mark.asyncio
async def test_high_confidence_small_context_uses_simple_path():
    llm = FakeLanguageModel(["It is in June."])
    synthesizer = AnswerSynthesizer(llm, system_prompt="persona")

    result = await synthesizer.synthesize("when is the trip?", "x" * 1500, ConfidenceTier.HIGH)

    assert result.strategy == STRATEGY_SIMPLE
    assert result.answer == "It is in June."
    assert len(llm.calls) == 1
    assert llm.calls[0]["temperature"] == 0.5
    assert llm.calls[0]["system_prompt"] == "persona"
    assert len(result.stages) == 1
    assert result.facts is None


@pytest.mark.asyncio
async def test_medium_confidence_uses_two_stage_path():
    llm = FakeLanguageModel([FACTS_JSON, "June, apparently."])
    synthesizer = AnswerSynthesizer(llm, system_prompt="persona")

    result = await synthesizer.synthesize("when is the trip?", "x" * 1500, ConfidenceTier.MEDIUM)

    assert result.strategy == STRATEGY_TWO_STAGE
    assert result.answer == "June, apparently."
    assert [c["temperature"] for c in llm.calls] == [0.1, 0.5]
    assert llm.calls[0]["system_prompt"] == FACT_EXTRACTION_PROMPT
    assert llm.calls[1]["system_prompt"].startswith("persona")
    assert "GROUNDING RULES" in llm.calls[1]["system_prompt"]
    assert "The trip is in June" in llm.calls[1]["user_prompt"]
    assert "hotel name" in llm.calls[1]["user_prompt"]
    assert len(result.facts.facts) == 1
    assert [s.name for s in result.stages] == ["fact_extraction", "grounded_answer"]
    assert result.total_usage.total_tokens == 30


@pytest.mark.asyncio
async def test_large_context_uses_two_stage_even_when_high():
    llm = FakeLanguageModel([FACTS_JSON, "answer"])

    result = await AnswerSynthesizer(llm).synthesize("q?", "y" * 2500, ConfidenceTier.HIGH)

    assert result.strategy == STRATEGY_TWO_STAGE


@pytest.mark.asyncio
async def test_malformed_stage_one_still_answers():
    llm = FakeLanguageModel(["sorry, I cannot produce JSON", "I don't know."])

    result = await AnswerSynthesizer(llm).synthesize("q?", "context", ConfidenceTier.LOW)

    assert result.answer == "I don't know."
    assert result.facts.facts == []
    assert '"facts": []' in llm.calls[1]["user_prompt"]


@pytest.mark.asyncio
async def test_no_context_goes_through_grounded_path():
    llm = FakeLanguageModel(['{"facts": [], "not_found": ["everything"]}', "Nothing on that."])

    result = await AnswerSynthesizer(llm).synthesize("q?", None, ConfidenceTier.NONE)

    assert result.strategy == STRATEGY_TWO_STAGE
    assert "nothing relevant was found" in llm.calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_external_context_is_labelled_and_never_fast_path():
    llm = FakeLanguageModel([FACTS_JSON, "answer"])

    result = await AnswerSynthesizer(llm).synthesize(
        "q?", "short external text", ConfidenceTier.HIGH, external=True
    )

    assert result.strategy == STRATEGY_TWO_STAGE
    assert "=== EXTERNAL KNOWLEDGE ===" in llm.calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_memory_context_included_in_prompt():
    llm = FakeLanguageModel(["answer"])

    await AnswerSynthesizer(llm).synthesize(
        "q?", "ctx", ConfidenceTier.HIGH, memory_context="Asker prefers short answers"
    )

    assert "=== USER MEMORY ===" in llm.calls[0]["user_prompt"]
    assert "Asker prefers short answers" in llm.calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_llm_failure_propagates():
    llm = FakeLanguageModel(error=GenerationError("provider down"))

    with pytest.raises(GenerationError, match="provider down"):
        await AnswerSynthesizer(llm).synthesize("q?", "ctx", ConfidenceTier.HIGH)
