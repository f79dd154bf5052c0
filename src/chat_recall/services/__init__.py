"""Services module for chat-recall."""

from chat_recall.services.confidence import ConfidenceEvaluator, classify_confidence
from chat_recall.services.merge import WeightedSource, merge_fragments, merge_weighted
from chat_recall.services.search_strategy import SearchStrategy
from chat_recall.services.context_assembler import ContextAssembler
from chat_recall.services.confidence_gate import ConfidenceGate, decide_gate
from chat_recall.services.answer_synthesizer import AnswerSynthesizer, can_use_fast_path
from chat_recall.services.ask_service import AskService
from chat_recall.services.embedding_service import EmbeddingService
from chat_recall.services.llm_service import OpenAIChatModel

__all__ = [
    "ConfidenceEvaluator",
    "classify_confidence",
    "WeightedSource",
    "merge_fragments",
    "merge_weighted",
    "SearchStrategy",
    "ContextAssembler",
    "ConfidenceGate",
    "decide_gate",
    "AnswerSynthesizer",
    "can_use_fast_path",
    "AskService",
    "EmbeddingService",
    "OpenAIChatModel",
]
