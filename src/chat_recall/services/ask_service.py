"""Ask pipeline: search, gate, assemble and synthesize one answer."""

import logging
import time
from typing import Optional

from chat_recall.services.answer_synthesizer import AnswerSynthesizer
from chat_recall.services.confidence_gate import ConfidenceGate
from chat_recall.services.search_strategy import SearchStrategy
from chat_recall.storage.interfaces import ExternalKnowledge
from chat_recall.storage.models import AskResult, CommandType, SearchResponse
from chat_recall.utils.errors import ValidationError
from chat_recall.utils.text import normalize_query


logger = logging.getLogger("chat-recall.ask")

DIRECT_QUERY_REASON = "Direct query (no chat search)"


class AskService:
    """
    Entry point for answering a question about a chat's history.

    Each request runs straight through search, gate, assembly and
    synthesis. Failures from any capability propagate to the caller
    unchanged; there are no partial answers.
    """

    def __init__(
        self,
        search_strategy: SearchStrategy,
        gate: ConfidenceGate,
        synthesizer: AnswerSynthesizer,
        external_knowledge: Optional[ExternalKnowledge] = None
    ):
        """
        Initialize ask service.

        Args:
            search_strategy: Personal/general search
            gate: Confidence gate wrapping the context assembler
            synthesizer: Answer synthesizer
            external_knowledge: Optional source used when the chat has no match
        """
        self.search_strategy = search_strategy
        self.gate = gate
        self.synthesizer = synthesizer
        self.external_knowledge = external_knowledge

    async def ask(
        self,
        chat_id: int,
        question: str,
        participant: Optional[str] = None,
        memory_context: Optional[str] = None,
        lookback_days: Optional[int] = None,
        command: CommandType = CommandType.GENERAL_QUESTION
    ) -> AskResult:
        """
        Answer a question.

        Args:
            chat_id: Chat whose history is searched
            question: Raw user question
            participant: Participant the question is about, if any
            memory_context: Long-term memory about the asker, if any
            lookback_days: Window for participant-restricted search
            command: GENERAL_QUESTION searches the chat; DIRECT_SEARCH skips it

        Returns:
            AskResult with answer, confidence and context decisions

        Raises:
            ValidationError: If the question is empty after normalization
            Any error raised by the index, store or language model, unchanged
        """
        query = normalize_query(question or "")
        if not query:
            raise ValidationError("Question cannot be empty")

        start_time = time.time()

        if command is CommandType.DIRECT_SEARCH:
            response = SearchResponse.empty(DIRECT_QUERY_REASON)
        elif participant and participant.strip().lstrip("@"):
            response = await self.search_strategy.personal_search(
                chat_id, participant, query, lookback_days=lookback_days
            )
        else:
            response = await self.search_strategy.general_search(chat_id, query)

        logger.info(
            f"Search for chat {chat_id}: confidence={response.confidence.value}, "
            f"results={len(response.results)}, reason={response.confidence_reason}"
        )

        outcome = await self.gate.process(chat_id, response, command)

        context = outcome.context
        external = False
        if outcome.use_external_fallback:
            context = await self._lookup_external(query)
            external = context is not None

        synthesis = await self.synthesizer.synthesize(
            query,
            context,
            response.confidence,
            memory_context=memory_context,
            external=external
        )

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Answered chat {chat_id}: strategy={synthesis.strategy}, "
            f"included={len(outcome.tracker.included_ids)}/{len(outcome.tracker)}, "
            f"tokens={synthesis.total_usage.total_tokens}, latency={latency_ms}ms"
        )

        return AskResult(
            answer_text=synthesis.answer,
            confidence=response.confidence,
            context_tracker=outcome.tracker,
            confidence_reason=response.confidence_reason,
            warning=outcome.warning,
            notice=outcome.notice,
            strategy=synthesis.strategy,
            stages=synthesis.stages
        )

    async def _lookup_external(self, query: str) -> Optional[str]:
        if self.external_knowledge is None:
            logger.debug("No external knowledge source configured")
            return None

        result = await self.external_knowledge.lookup(query)
        if result and result.strip():
            logger.info(f"External knowledge returned {len(result)} chars")
            return result
        return None
