"""
Learning system - feedback-driven category suggestions and priority scoring.

Classification outcomes are kept as examples on the instance; user
feedback is appended to the feedback log and only nudges O(1) counters on
write. Statistics are folded from the log on read.
"""

import re
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from inbox_triage.config import Settings
from inbox_triage.core.errors import NotFoundError, ValidationError
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.classification import (
    CategorySuggestion,
    ClassificationFeedback,
    ClassificationResult,
    FeedbackEvent,
    LearningExample,
    LearningStatistics,
    PriorityFactors,
)
from inbox_triage.models.domain.email import EmailContext, normalize_email
from inbox_triage.models.domain.enums import FeedbackType, Priority
from inbox_triage.repositories.base import FeedbackLog

logger = get_logger(__name__)

PRIORITY_WEIGHTS = {
    "sender_importance": 0.25,
    "keyword_urgency": 0.20,
    "deadline_proximity": 0.15,
    "vip_status": 0.15,
    "historical_response": 0.10,
    "sentiment_urgency": 0.10,
    "contextual_clues": 0.05,
}

BASELINE_ACCURACY = 0.75
ACCURACY_ALPHA = 0.1
MAX_SUGGESTION_CONFIDENCE = 0.95
SENDER_DOMAIN_BONUS = 0.2
TREND_DAYS = 30

TOKEN_PATTERN = re.compile(r"[a-z0-9']+")
STOPWORDS = {
    "the", "and", "for", "you", "your", "with", "this", "that", "are", "was",
    "have", "has", "from", "will", "can", "our", "not", "but", "all", "any",
    "please", "thanks", "hi", "hello", "regards",
}


@dataclass(slots=True)
class CategoryHint:
    keywords: tuple[str, ...]
    sender_patterns: tuple[str, ...]
    weight: float


def default_category_hints() -> dict[str, CategoryHint]:
    return {
        "work": CategoryHint(
            ("project", "meeting", "deadline", "report", "task", "team"),
            ("@company.com", "@client.com"),
            0.8,
        ),
        "personal": CategoryHint(
            ("family", "friend", "weekend", "dinner", "birthday"),
            ("@gmail.com", "@yahoo.com"),
            0.7,
        ),
        "finance": CategoryHint(
            ("invoice", "payment", "bill", "receipt", "transaction", "account"),
            ("@bank.com", "@paypal.com"),
            0.85,
        ),
        "newsletter": CategoryHint(
            ("unsubscribe", "newsletter", "update", "digest", "weekly"),
            ("noreply@", "newsletter@", "notifications@"),
            0.9,
        ),
    }


def tokenize(*parts: str) -> frozenset[str]:
    text = " ".join(p for p in parts if p).lower()[:4000]
    return frozenset(t for t in TOKEN_PATTERN.findall(text) if len(t) > 2 and t not in STOPWORDS)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


class LearningSystem:
    def __init__(
        self,
        feedback_log: FeedbackLog,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        max_examples: int = 1000,
    ):
        self.feedback_log = feedback_log
        self.enabled = settings.LEARNING_ENABLED
        self.min_similarity = settings.LEARNING_MIN_SIMILARITY
        self.learning_rate = settings.LEARNING_RATE
        self.max_examples = max_examples
        self._clock = clock or (lambda: datetime.now(UTC))

        self._hints = default_category_hints()
        self._examples: OrderedDict[str, LearningExample] = OrderedDict()
        self._category_counts: dict[str, list[int]] = {}
        self._accuracy = BASELINE_ACCURACY

    # -----------------------------------------------------------------
    # Outcomes and suggestions
    # -----------------------------------------------------------------

    def record_classification(self, context: EmailContext, result: ClassificationResult) -> None:
        """Remember an outcome so later feedback can confirm or correct it."""
        self._examples[context.id] = LearningExample(
            email_id=context.id,
            tokens=tokenize(context.subject, context.body),
            sender_domain=context.sender_domain,
            category=result.category,
            priority=result.priority,
            recorded_at=self._clock(),
        )
        self._examples.move_to_end(context.id)
        while len(self._examples) > self.max_examples:
            self._examples.popitem(last=False)

    def get_recorded_example(self, email_id: str) -> LearningExample | None:
        return self._examples.get(email_id)

    def _hint_candidates(self, subject: str, sender: str, body: str) -> list[CategorySuggestion]:
        text = f"{subject} {body}".lower()
        sender = (sender or "").lower()
        candidates = []

        for category, hint in self._hints.items():
            keyword_hits = sum(1 for k in hint.keywords if k in text)
            sender_hits = sum(1 for p in hint.sender_patterns if p in sender)
            if not keyword_hits and not sender_hits:
                continue
            score = (0.1 * keyword_hits + 0.2 * sender_hits) * hint.weight
            candidates.append(
                CategorySuggestion(category, min(score, MAX_SUGGESTION_CONFIDENCE), "hint")
            )
        return candidates

    def _example_candidates(self, subject: str, sender: str, body: str) -> list[CategorySuggestion]:
        tokens = tokenize(subject, body)
        address = normalize_email(sender)
        domain = address.split("@", 1)[1] if "@" in address else ""
        best: dict[str, float] = {}

        for example in self._examples.values():
            if not example.confirmed:
                continue
            score = jaccard(tokens, example.tokens)
            if domain and domain == example.sender_domain:
                score += SENDER_DOMAIN_BONUS
            score = min(score, MAX_SUGGESTION_CONFIDENCE)
            if score > best.get(example.category, 0.0):
                best[example.category] = score

        return [CategorySuggestion(c, s, "example") for c, s in best.items()]

    def suggest_category_for_email(
        self, subject: str, sender: str, body: str
    ) -> CategorySuggestion | None:
        if not self.enabled:
            return None

        candidates = self._hint_candidates(subject, sender, body)
        candidates += self._example_candidates(subject, sender, body)
        if not candidates:
            return None

        best = max(candidates, key=lambda c: c.confidence)
        if best.confidence < self.min_similarity:
            return None
        return best

    @staticmethod
    def calculate_priority_score(factors: PriorityFactors) -> float:
        """Weighted sum of the seven factors, scaled to 0-100."""
        total = 0.0
        for name, weight in PRIORITY_WEIGHTS.items():
            value = max(0.0, min(1.0, getattr(factors, name)))
            total += value * weight
        return round(total * 100, 2)

    # -----------------------------------------------------------------
    # Feedback
    # -----------------------------------------------------------------

    async def record_feedback(
        self,
        email_id: str,
        feedback: ClassificationFeedback,
        classification: ClassificationResult | None = None,
    ) -> FeedbackEvent:
        """Append a feedback event; never touches queue items."""
        if feedback.email_id != email_id:
            raise ValidationError("feedback email_id does not match", field="email_id")

        example = self._examples.get(email_id)
        if classification is not None:
            category, priority = classification.category, classification.priority
        elif example is not None:
            category, priority = example.category, example.priority
        else:
            raise NotFoundError("classification", email_id)

        event = await self.feedback_log.append(
            FeedbackEvent(feedback=feedback, category=category, priority=priority)
        )
        self._apply(event)

        if example is not None:
            self._update_example(example, feedback)

        logger.info(
            "Classification feedback recorded",
            email_id=email_id,
            feedback_type=feedback.feedback_type.value,
            category=category,
        )
        return event

    def _apply(self, event: FeedbackEvent) -> None:
        counts = self._category_counts.setdefault(event.category, [0, 0])
        counts[1] += 1
        if event.is_correct:
            counts[0] += 1

        outcome = 1.0 if event.is_correct else 0.0
        self._accuracy = self._accuracy * (1 - ACCURACY_ALPHA) + outcome * ACCURACY_ALPHA

        feedback = event.feedback
        if feedback.feedback_type == FeedbackType.CORRECT:
            self._nudge(event.category, self.learning_rate * 0.5)
        elif feedback.feedback_type == FeedbackType.WRONG_CATEGORY and feedback.correct_value:
            self._nudge(feedback.correct_value, self.learning_rate)

    def _nudge(self, category: str, amount: float) -> None:
        hint = self._hints.get(category)
        if hint is not None:
            hint.weight = min(1.0, hint.weight + amount)

    @staticmethod
    def _update_example(example: LearningExample, feedback: ClassificationFeedback) -> None:
        if feedback.feedback_type == FeedbackType.CORRECT:
            example.confirmed = True
        elif feedback.feedback_type == FeedbackType.WRONG_CATEGORY and feedback.correct_value:
            example.category = feedback.correct_value
            example.confirmed = True
        elif feedback.feedback_type == FeedbackType.WRONG_PRIORITY and feedback.correct_value:
            try:
                example.priority = Priority(feedback.correct_value.upper())
            except ValueError:
                logger.warning("Ignoring unknown priority correction", value=feedback.correct_value)

    async def rebuild_from_log(self) -> int:
        """Replay the feedback log into counters and hint weights."""
        events = await self.feedback_log.list()
        self._hints = default_category_hints()
        self._category_counts = {}
        self._accuracy = BASELINE_ACCURACY
        for event in events:
            self._apply(event)
        logger.info("Learning state rebuilt from feedback log", events=len(events))
        return len(events)

    @property
    def rolling_accuracy(self) -> float:
        return self._accuracy

    def category_weight(self, category: str) -> float | None:
        hint = self._hints.get(category)
        return hint.weight if hint else None

    # -----------------------------------------------------------------
    # Statistics
    # -----------------------------------------------------------------

    async def get_statistics(self) -> LearningStatistics:
        events = await self.feedback_log.list()

        by_type = {t.value: 0 for t in FeedbackType}
        per_category: dict[str, list[int]] = {}
        per_day: dict[str, list[int]] = {}
        correct = 0
        cutoff = (self._clock() - timedelta(days=TREND_DAYS)).date()

        for event in events:
            by_type[event.feedback.feedback_type.value] += 1
            counts = per_category.setdefault(event.category, [0, 0])
            counts[1] += 1
            if event.is_correct:
                counts[0] += 1
                correct += 1

            day = event.timestamp.date()
            if day >= cutoff:
                day_counts = per_day.setdefault(day.isoformat(), [0, 0])
                day_counts[1] += 1
                if event.is_correct:
                    day_counts[0] += 1

        accuracy = correct / len(events) * 100 if events else BASELINE_ACCURACY * 100
        categories = {e.category for e in self._examples.values()} | set(per_category)

        return LearningStatistics(
            total_examples=len(self._examples),
            accuracy=round(accuracy, 1),
            categories_learned=len(categories),
            feedback_by_type=by_type,
            category_accuracy={
                c: round(ok / total * 100, 1) for c, (ok, total) in per_category.items()
            },
            learning_trend=[
                {"date": day, "accuracy": round(ok / total * 100, 1), "examples": total}
                for day, (ok, total) in sorted(per_day.items())
            ],
        )
