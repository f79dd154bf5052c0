"""
Answer synthesis with a confidence-dependent generation strategy:
- Simple path: one LLM call when retrieval is confident and context is small
- Grounded path: Stage 1 extracts facts as JSON, Stage 2 answers only from them
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

from chat_recall.constants import (
    FACT_EXTRACTION_TEMPERATURE,
    FAST_PATH_MAX_CONTEXT_CHARS,
    GROUNDED_TEMPERATURE,
    MAX_EXTRACTED_FACTS,
    SIMPLE_TEMPERATURE,
)
from chat_recall.storage.interfaces import LanguageModel
from chat_recall.storage.models import (
    AnswerFacts,
    ConfidenceTier,
    ExtractedFact,
    LlmResponse,
    StageMetrics,
    SynthesisResult,
)


logger = logging.getLogger("chat-recall.answer")

STRATEGY_SIMPLE = "simple"
STRATEGY_TWO_STAGE = "two_stage"

FACT_CONFIDENCE_LEVELS = ("high", "medium", "low")

DEFAULT_SYSTEM_PROMPT = """You are the long-time member of a group chat who remembers everything that was said in it.
You answer questions about the chat's history: who said what, when, and what came of it.
You are direct and a little sarcastic, but you never make things up."""


FACT_EXTRACTION_PROMPT = """Extract ONLY the facts from the provided context that help answer the question.
Respond with STRICT JSON, no markdown:

{
  "facts": [
    {"claim": "statement", "source": "who said or mentioned it", "confidence": "high|medium|low"}
  ],
  "not_found": ["what was asked about but is absent from the context"]
}

RULES:
1. ONLY facts present in the context - do NOT invent anything
2. If the information is missing, add it to not_found
3. confidence: high = stated directly, medium = can be inferred, low = indirect
4. At most 5 facts
"""


SIMPLE_USER_TEMPLATE = """Today's date: {today}
Question: {question}
{memory_section}
=== CHAT CONTEXT ===
{context}

INSTRUCTIONS:
1. Find ONLY the messages relevant to the question
2. IGNORE unrelated dialogs, they are included only for surrounding context
3. If the user memory contains a direct answer, use it
4. Write names exactly as they appear in the context
5. Do NOT invent facts - use only the context above
6. Do not mention "context", "memory" or "data"; answer as if you remember it yourself

Format: 2-4 sentences.
"""


FACT_EXTRACTION_USER_TEMPLATE = """Question: {question}
{memory_section}
=== {context_label} ===
{context}
"""


GROUNDED_SYSTEM_SUFFIX = """

CRITICAL - GROUNDING RULES:
1. Use ONLY the facts from the JSON below
2. Do NOT invent new facts, names or events
3. If a fact is missing, say plainly that you don't know
4. If something the user asked about is listed in not_found, say you couldn't find it
5. Style and humor are allowed only on top of the confirmed facts
"""


GROUNDED_USER_TEMPLATE = """Today's date: {today}
Question: {question}

EXTRACTED FACTS (JSON):
{facts_json}

Answer the question using ONLY the facts above.
Format: 2-4 sentences.
"""

CHAT_CONTEXT_LABEL = "CHAT CONTEXT"
EXTERNAL_CONTEXT_LABEL = "EXTERNAL KNOWLEDGE"
NO_CONTEXT_PLACEHOLDER = "(nothing relevant was found)"


def can_use_fast_path(context_chars: int, tier: ConfidenceTier) -> bool:
    """
    Whether a single LLM call is enough.

    Requires HIGH retrieval confidence and a context of at most 2,000
    characters; everything else goes through grounded generation.
    """
    return tier is ConfidenceTier.HIGH and context_chars <= FAST_PATH_MAX_CONTEXT_CHARS


def _clean_json_response(content: str) -> str:
    """Strip markdown fences and surrounding prose from a JSON answer."""
    cleaned = content.strip()

    if cleaned.startswith("```"):
        lines = cleaned.split("\n")[1:]
        body = []
        for line in lines:
            if line.startswith("```"):
                break
            body.append(line)
        cleaned = "\n".join(body)

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start >= 0 and end > start:
        cleaned = cleaned[start:end + 1]

    return cleaned


def parse_answer_facts(content: Optional[str]) -> AnswerFacts:
    """
    Parse Stage 1 output into AnswerFacts.

    Never raises: anything unparseable yields empty facts so Stage 2 can
    still run and answer "don't know".

    Args:
        content: Raw LLM response

    Returns:
        AnswerFacts with at most 5 facts
    """
    if not content or not content.strip():
        logger.warning("Fact extraction returned empty content")
        return AnswerFacts()

    try:
        data = json.loads(_clean_json_response(content))
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse fact extraction JSON: {e}")
        return AnswerFacts()

    if not isinstance(data, dict):
        logger.warning(f"Fact extraction JSON is not an object: {type(data).__name__}")
        return AnswerFacts()

    facts: List[ExtractedFact] = []
    raw_facts = data.get("facts")
    if isinstance(raw_facts, list):
        for item in raw_facts:
            fact = _parse_fact(item)
            if fact is not None:
                facts.append(fact)
            if len(facts) >= MAX_EXTRACTED_FACTS:
                break

    not_found: List[str] = []
    raw_not_found = data.get("not_found")
    if isinstance(raw_not_found, list):
        not_found = [v.strip() for v in raw_not_found if isinstance(v, str) and v.strip()]

    return AnswerFacts(facts=facts, not_found=not_found)


def _parse_fact(item: Any) -> Optional[ExtractedFact]:
    if not isinstance(item, dict):
        return None

    claim = item.get("claim")
    if not isinstance(claim, str) or not claim.strip():
        return None

    source = item.get("source")
    if not isinstance(source, str) or not source.strip():
        source = None

    confidence = item.get("confidence")
    if not isinstance(confidence, str) or confidence.lower() not in FACT_CONFIDENCE_LEVELS:
        confidence = "medium"

    return ExtractedFact(claim=claim.strip(), source=source, confidence=confidence.lower())


def format_facts_for_prompt(facts: AnswerFacts) -> str:
    return json.dumps(facts.to_dict(), ensure_ascii=False, indent=2)


class AnswerSynthesizer:
    """
    Generates the final answer from assembled context.

    The strategy is chosen once per request. LLM errors propagate; only a
    malformed Stage 1 response is recovered locally.
    """

    def __init__(self, llm: LanguageModel, system_prompt: str = DEFAULT_SYSTEM_PROMPT):
        """
        Initialize answer synthesizer.

        Args:
            llm: Language model capability
            system_prompt: Persona prompt used for user-facing answers
        """
        self.llm = llm
        self.system_prompt = system_prompt

    async def synthesize(
        self,
        question: str,
        context: Optional[str],
        confidence: ConfidenceTier,
        memory_context: Optional[str] = None,
        external: bool = False
    ) -> SynthesisResult:
        """
        Generate an answer.

        Args:
            question: User question
            context: Assembled chat context, external knowledge, or None
            confidence: Retrieval confidence tier
            memory_context: Optional long-term memory about the asker
            external: Whether ``context`` came from the external fallback

        Returns:
            SynthesisResult with answer, strategy and stage metrics
        """
        context_text = (context or "").strip()

        if context_text and not external and can_use_fast_path(len(context_text), confidence):
            logger.info(f"Simple path: confidence={confidence.value}, context={len(context_text)} chars")
            return await self._simple(question, context_text, memory_context)

        return await self._two_stage(question, context_text, memory_context, external)

    async def _simple(self, question: str, context: str, memory_context: Optional[str]) -> SynthesisResult:
        user_prompt = SIMPLE_USER_TEMPLATE.format(
            today=self._today(),
            question=question,
            memory_section=self._memory_section(memory_context),
            context=context
        )

        response, metrics = await self._call("simple", self.system_prompt, user_prompt, SIMPLE_TEMPERATURE)

        logger.info(
            f"Simple answer: provider={response.provider_id}, "
            f"tokens={metrics.usage.total_tokens}, latency={metrics.elapsed_ms}ms"
        )

        return SynthesisResult(answer=response.content, strategy=STRATEGY_SIMPLE, stages=[metrics])

    async def _two_stage(
        self,
        question: str,
        context: str,
        memory_context: Optional[str],
        external: bool
    ) -> SynthesisResult:
        # Stage 1: fact extraction
        extraction_prompt = FACT_EXTRACTION_USER_TEMPLATE.format(
            question=question,
            memory_section=self._memory_section(memory_context),
            context_label=EXTERNAL_CONTEXT_LABEL if external else CHAT_CONTEXT_LABEL,
            context=context or NO_CONTEXT_PLACEHOLDER
        )

        stage1, stage1_metrics = await self._call(
            "fact_extraction", FACT_EXTRACTION_PROMPT, extraction_prompt, FACT_EXTRACTION_TEMPERATURE
        )
        facts = parse_answer_facts(stage1.content)

        logger.info(
            f"Stage 1: {len(facts.facts)} facts, {len(facts.not_found)} not_found, "
            f"latency={stage1_metrics.elapsed_ms}ms"
        )

        # Stage 2: grounded generation
        grounded_system = self.system_prompt + GROUNDED_SYSTEM_SUFFIX
        grounded_prompt = GROUNDED_USER_TEMPLATE.format(
            today=self._today(),
            question=question,
            facts_json=format_facts_for_prompt(facts)
        )

        stage2, stage2_metrics = await self._call(
            "grounded_answer", grounded_system, grounded_prompt, GROUNDED_TEMPERATURE
        )

        result = SynthesisResult(
            answer=stage2.content,
            strategy=STRATEGY_TWO_STAGE,
            stages=[stage1_metrics, stage2_metrics],
            facts=facts
        )

        logger.info(
            f"Two-stage answer: stage1={stage1_metrics.elapsed_ms}ms, stage2={stage2_metrics.elapsed_ms}ms, "
            f"tokens={result.total_usage.total_tokens}"
        )
        return result

    async def _call(self, name: str, system_prompt: str, user_prompt: str, temperature: float):
        start_time = time.time()
        response: LlmResponse = await self.llm.complete(system_prompt, user_prompt, temperature)
        metrics = StageMetrics(
            name=name,
            temperature=temperature,
            usage=response.usage,
            elapsed_ms=int((time.time() - start_time) * 1000),
            provider_id=response.provider_id
        )
        return response, metrics

    @staticmethod
    def _memory_section(memory_context: Optional[str]) -> str:
        if memory_context and memory_context.strip():
            return f"\n=== USER MEMORY ===\n{memory_context.strip()}\n"
        return ""

    @staticmethod
    def _today() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")
