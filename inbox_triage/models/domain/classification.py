"""
Classification outputs and the learning loop's event types.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from inbox_triage.models.domain.actions import RuleAction
from inbox_triage.models.domain.enums import (
    ClassificationMethod,
    FeedbackType,
    Priority,
    Sentiment,
)


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """One classification decision; never persisted directly."""

    email_id: str
    priority: Priority
    category: str
    labels: tuple[str, ...]
    needs_reply: bool
    waiting_on_others: bool
    sentiment: Sentiment
    suggested_actions: tuple[RuleAction, ...]
    confidence: float
    method: ClassificationMethod
    reasoning: str
    applied_rules: tuple[str, ...] = ()
    is_vip: bool = False
    vip_tier: int | None = None
    feedback_required: bool = False
    is_recurring: bool = False
    is_newsletter: bool = False
    is_automated: bool = False
    importance: float = 50.0
    urgency: float = 50.0
    classified_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class SummarizerHint:
    """Free-text hint returned by the optional LLM summarizer."""

    category: str | None
    priority: Priority | None
    confidence: float
    sentiment: Sentiment | None = None
    needs_reply: bool | None = None
    reasoning: str = ""


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    category: str
    confidence: float
    source: str  # "hint" or "example"


@dataclass(frozen=True, slots=True)
class PriorityFactors:
    """Pre-computed factor values, each expected in [0, 1]."""

    sender_importance: float = 0.0
    keyword_urgency: float = 0.0
    deadline_proximity: float = 0.0
    vip_status: float = 0.0
    historical_response: float = 0.0
    sentiment_urgency: float = 0.0
    contextual_clues: float = 0.0


@dataclass(frozen=True, slots=True)
class ClassificationFeedback:
    """Write-once user correction."""

    email_id: str
    feedback_type: FeedbackType
    correct_value: str | None = None
    user_action: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class FeedbackEvent:
    """Append-only log entry: a feedback plus the outcome it judged."""

    feedback: ClassificationFeedback
    category: str
    priority: Priority
    sequence: int = 0

    @property
    def timestamp(self) -> datetime:
        return self.feedback.timestamp

    @property
    def is_correct(self) -> bool:
        return self.feedback.feedback_type == FeedbackType.CORRECT


@dataclass(slots=True)
class LearningExample:
    """A recorded classification outcome, confirmed once feedback agrees."""

    email_id: str
    tokens: frozenset[str]
    sender_domain: str
    category: str
    priority: Priority
    recorded_at: datetime
    confirmed: bool = False


@dataclass(slots=True)
class LearningStatistics:
    total_examples: int
    accuracy: float
    categories_learned: int
    feedback_by_type: dict[str, int]
    category_accuracy: dict[str, float]
    learning_trend: list[dict]
