"""Confidence gate: decides how retrieval confidence shapes the answer path."""

import logging
from dataclasses import dataclass
from typing import Optional

from chat_recall.services.context_assembler import ContextAssembler
from chat_recall.storage.models import (
    CommandType,
    ConfidenceTier,
    GateOutcome,
    InclusionReason,
    SearchResponse,
)


logger = logging.getLogger("chat-recall.gate")

EXTERNAL_SEARCH_NOTICE = "Nothing about this in the chat history, searching externally."
WEAK_MATCH_WARNING = "Weak match in the chat history, the answer may be inaccurate."


@dataclass(frozen=True)
class GateDecision:
    """What the pipeline should do with a search response."""
    build_context: bool
    use_external_fallback: bool
    exclusion_reason: Optional[InclusionReason] = None
    warning: Optional[str] = None
    notice: Optional[str] = None


def decide_gate(confidence: ConfidenceTier, command: CommandType) -> GateDecision:
    """
    Pure decision over (confidence, command type).

    A NONE tier never blocks: it reroutes to the external-knowledge path
    with a short notice. LOW proceeds with a weak-match warning.
    """
    if command is CommandType.DIRECT_SEARCH:
        return GateDecision(
            build_context=False,
            use_external_fallback=True,
            exclusion_reason=InclusionReason.SMART_NO_CONTEXT
        )

    if confidence is ConfidenceTier.NONE:
        return GateDecision(
            build_context=False,
            use_external_fallback=True,
            exclusion_reason=InclusionReason.CONFIDENCE_NONE,
            notice=EXTERNAL_SEARCH_NOTICE
        )

    if confidence is ConfidenceTier.LOW:
        return GateDecision(build_context=True, use_external_fallback=False, warning=WEAK_MATCH_WARNING)

    return GateDecision(build_context=True, use_external_fallback=False)


class ConfidenceGate:
    """Applies gate decisions, delegating context building to the assembler."""

    def __init__(self, assembler: ContextAssembler):
        self.assembler = assembler

    async def process(
        self,
        chat_id: int,
        response: SearchResponse,
        command: CommandType = CommandType.GENERAL_QUESTION
    ) -> GateOutcome:
        """
        Turn a search response into local context (or the lack of it).

        Args:
            chat_id: Chat the results belong to
            response: Merged search response
            command: Command type of the request

        Returns:
            GateOutcome with context text (None when skipped) and tracker
        """
        decision = decide_gate(response.confidence, command)

        if not decision.build_context:
            assembled = self.assembler.assemble_no_context(response.results, decision.exclusion_reason)
            logger.info(
                f"Gate: confidence={response.confidence.value}, command={command.value} -> "
                f"no local context ({decision.exclusion_reason.value})"
            )
            return GateOutcome(
                context=None,
                tracker=assembled.tracker,
                notice=decision.notice,
                use_external_fallback=decision.use_external_fallback
            )

        assembled = await self.assembler.assemble(chat_id, response.results)
        logger.info(
            f"Gate: confidence={response.confidence.value} -> context "
            f"{len(assembled.text)} chars, warning={decision.warning is not None}"
        )

        return GateOutcome(
            context=assembled.text,
            tracker=assembled.tracker,
            warning=decision.warning
        )
