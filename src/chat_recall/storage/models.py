"""Data models for chat-recall."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Any, Dict, Set, Tuple


class ConfidenceTier(Enum):
    """Four-level bucketing of retrieval quality."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]

    def __lt__(self, other: "ConfidenceTier") -> bool:
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank < other.rank


_TIER_RANKS = {
    ConfidenceTier.NONE: 0,
    ConfidenceTier.LOW: 1,
    ConfidenceTier.MEDIUM: 2,
    ConfidenceTier.HIGH: 3,
}


class CommandType(Enum):
    """How the caller wants the question answered."""
    GENERAL_QUESTION = "general-question"
    DIRECT_SEARCH = "direct-search"


class InclusionReason(Enum):
    """Why a fragment did or did not make it into the assembled context."""
    OK = "ok"
    EMPTY_TEXT = "empty_text"
    NOT_IN_TOP_K = "not_in_top_k"
    BUDGET_EXCEEDED = "budget_exceeded"
    CONFIDENCE_NONE = "confidence_none"
    SMART_NO_CONTEXT = "smart_no_context"


@dataclass(frozen=True)
class Fragment:
    """One candidate conversation snippet returned by a similarity search."""
    chat_id: int
    message_id: int
    text: str
    similarity: float
    distance: float = 0.0
    chunk_index: int = 0
    is_question_variant: bool = False
    is_window: bool = False
    is_bulk_content: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> Tuple[int, int, int, bool]:
        """Uniqueness key; several fragments may share a message id."""
        return (self.chat_id, self.message_id, self.chunk_index, self.is_question_variant)


@dataclass(frozen=True)
class MessageFilter:
    """Restriction applied to message-index lookups."""
    participant: Optional[str] = None
    since: Optional[datetime] = None


@dataclass
class SearchResponse:
    """Merged search results with a confidence assessment."""
    results: List[Fragment]
    confidence: ConfidenceTier
    confidence_reason: str
    best_score: float = 0.0
    score_gap: Optional[float] = None
    has_full_text_match: Optional[bool] = None

    def __post_init__(self):
        if not self.results:
            self.confidence = ConfidenceTier.NONE

    @classmethod
    def empty(cls, reason: str) -> "SearchResponse":
        """No-match response."""
        return cls(results=[], confidence=ConfidenceTier.NONE, confidence_reason=reason)

    @property
    def is_trusted(self) -> bool:
        return self.confidence is not ConfidenceTier.NONE


@dataclass(frozen=True)
class ContextMessage:
    """A single chat message as stored by the message store."""
    message_id: int
    chat_id: int
    author: str
    text: str
    sent_at: datetime


@dataclass
class ContextWindow:
    """
    A run of consecutive messages around a matched message.

    Merged windows can hold several matches; every id in
    ``matched_ids`` is marked, not only the center.
    """
    center_message_id: int
    messages: List[ContextMessage]
    matched_ids: Set[int] = field(default_factory=set)

    def is_match(self, message_id: int) -> bool:
        return message_id == self.center_message_id or message_id in self.matched_ids

    @property
    def message_ids(self) -> List[int]:
        return [m.message_id for m in self.messages]

    @property
    def formatted_text(self) -> str:
        lines = []
        for message in self.messages:
            marker = "→ " if self.is_match(message.message_id) else "  "
            lines.append(f"{marker}[{message.sent_at:%H:%M}] {message.author}: {message.text}")
        return "\n".join(lines) + "\n" if lines else ""


@dataclass(frozen=True)
class ContextDecision:
    """One inclusion/exclusion decision for a message id."""
    message_id: int
    included: bool
    reason: InclusionReason
    fallback: bool = False


class ContextTracker:
    """
    Append-only log of context decisions for one request.

    Decisions are never edited in place; the mapping view resolves each
    message id to the latest decision recorded for it. Used for audit only.
    """

    def __init__(self):
        self._decisions: List[ContextDecision] = []

    def record(
        self,
        message_id: int,
        included: bool,
        reason: InclusionReason,
        fallback: bool = False
    ) -> ContextDecision:
        decision = ContextDecision(message_id, included, reason, fallback)
        self._decisions.append(decision)
        return decision

    def exclude_all(self, message_ids: List[int], reason: InclusionReason) -> None:
        for message_id in message_ids:
            self.record(message_id, False, reason)

    @property
    def decisions(self) -> Tuple[ContextDecision, ...]:
        return tuple(self._decisions)

    def as_mapping(self) -> Dict[int, Tuple[bool, InclusionReason]]:
        """Latest ``(included, reason)`` per message id."""
        return {d.message_id: (d.included, d.reason) for d in self._decisions}

    def decision_for(self, message_id: int) -> Optional[ContextDecision]:
        for decision in reversed(self._decisions):
            if decision.message_id == message_id:
                return decision
        return None

    @property
    def included_ids(self) -> List[int]:
        return [mid for mid, (included, _) in self.as_mapping().items() if included]

    def __len__(self) -> int:
        return len(self.as_mapping())

    def __contains__(self, message_id: int) -> bool:
        return self.decision_for(message_id) is not None


@dataclass
class AssembledContext:
    """Budget-bounded context string plus its audit trail."""
    text: str
    tracker: ContextTracker
    included_count: int = 0
    used_chars: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class ExtractedFact:
    """A single claim extracted from context during stage one."""
    claim: str
    source: Optional[str] = None
    confidence: str = "medium"


@dataclass
class AnswerFacts:
    """Stage-one output: confirmed facts and unsupported aspects."""
    facts: List[ExtractedFact] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)

    @property
    def has_sufficient_info(self) -> bool:
        return len(self.facts) > 0

    def to_dict(self) -> dict:
        return {
            "facts": [
                {"claim": f.claim, "source": f.source or "", "confidence": f.confidence}
                for f in self.facts
            ],
            "not_found": list(self.not_found),
        }


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class LlmResponse:
    """Result of one language-model completion."""
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    provider_id: str = "unknown"
    model: Optional[str] = None


@dataclass(frozen=True)
class StageMetrics:
    """Observability record for one LLM call."""
    name: str
    temperature: float
    usage: TokenUsage
    elapsed_ms: int
    provider_id: str


@dataclass
class SynthesisResult:
    """Answer plus the generation strategy and per-stage metrics."""
    answer: str
    strategy: str
    stages: List[StageMetrics] = field(default_factory=list)
    facts: Optional[AnswerFacts] = None

    @property
    def total_usage(self) -> TokenUsage:
        total = TokenUsage()
        for stage in self.stages:
            total = total + stage.usage
        return total


@dataclass
class GateOutcome:
    """Result of passing a search response through the confidence gate."""
    context: Optional[str]
    tracker: ContextTracker
    warning: Optional[str] = None
    notice: Optional[str] = None
    use_external_fallback: bool = False


@dataclass
class AskResult:
    """What the pipeline hands back to its caller."""
    answer_text: str
    confidence: ConfidenceTier
    context_tracker: ContextTracker
    confidence_reason: str = ""
    warning: Optional[str] = None
    notice: Optional[str] = None
    strategy: str = ""
    stages: List[StageMetrics] = field(default_factory=list)

    @property
    def reply_text(self) -> str:
        """Answer with the weak-match warning or external notice prepended."""
        prefix = self.warning or self.notice
        if prefix:
            return f"{prefix}\n\n{self.answer_text}"
        return self.answer_text
