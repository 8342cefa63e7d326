"""
Classification engine - one ClassificationResult per message.

Resolution order is fixed: VIP check, rule evaluation, learned category
(only when no rule is confident enough) or heuristic baseline, optional AI
hint merged by weighted average, then keyword flags. Every stage that
fires adds to `reasoning`; later stages refine, never silently drop, what
earlier stages produced. The VIP priority floor is applied last.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from inbox_triage.config import Settings
from inbox_triage.core.errors import UpstreamUnavailable
from inbox_triage.features.classifier import heuristics
from inbox_triage.features.classifier.learning_system import LearningSystem
from inbox_triage.features.classifier.rules_engine import (
    RulesEngine,
    category_for_labels,
    priority_for_rule,
)
from inbox_triage.features.vip.manager import VIP_CONFIDENCE, VIPManager
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.api.triage_response import ClassificationResultResponse
from inbox_triage.models.domain.actions import (
    ArchiveAction,
    LabelAction,
    RuleAction,
    StarAction,
    merge_actions,
)
from inbox_triage.models.domain.classification import (
    ClassificationFeedback,
    ClassificationResult,
    FeedbackEvent,
    PriorityFactors,
    SummarizerHint,
)
from inbox_triage.models.domain.email import EmailContext
from inbox_triage.models.domain.enums import ClassificationMethod, Priority
from inbox_triage.models.domain.vip import VIPContact
from inbox_triage.services.cache import CacheBackend
from inbox_triage.services.openai_summarizer import Summarizer

logger = get_logger(__name__)

BASELINE_CONFIDENCE = 0.3
VIP_CONFIDENCE_BOOST = 0.1
MAX_VIP_CONFIDENCE = 0.99
HYBRID_NO_RULE_FACTOR = 0.9
LOW_IMPORTANCE_FACTOR = 0.95
ARCHIVE_CONFIDENCE = 0.8


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(v for v in values if v))


class ClassificationEngine:
    """Composes the rules engine, VIP manager and learning system."""

    def __init__(
        self,
        rules_engine: RulesEngine,
        vip_manager: VIPManager,
        learning_system: LearningSystem,
        settings: Settings,
        summarizer: Summarizer | None = None,
        cache: CacheBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.rules_engine = rules_engine
        self.vip_manager = vip_manager
        self.learning_system = learning_system
        self.summarizer = summarizer
        self.cache = cache
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))

    @staticmethod
    def _cache_key(email_id: str) -> str:
        return f"classification:{email_id}"

    async def classify_email(self, context: EmailContext, use_cache: bool = True) -> ClassificationResult:
        if self.cache is not None and use_cache:
            cached = await self.cache.get(self._cache_key(context.id))
            if cached:
                try:
                    return ClassificationResultResponse.model_validate_json(cached).to_domain()
                except ValueError as e:
                    logger.warning("Discarding unreadable cached classification", error=str(e))

        result = await self._classify(context)
        self.learning_system.record_classification(context, result)

        if self.cache is not None:
            payload = ClassificationResultResponse.from_domain(result).model_dump_json()
            await self.cache.set_with_ttl(
                self._cache_key(context.id),
                payload,
                self.settings.CLASSIFICATION_CACHE_TTL_SECONDS,
            )

        logger.info(
            "Email classified",
            email_id=context.id,
            priority=result.priority.value,
            category=result.category,
            method=result.method.value,
            confidence=result.confidence,
            is_vip=result.is_vip,
        )
        return result

    async def classify_emails(self, contexts: Iterable[EmailContext]) -> list[ClassificationResult]:
        return [await self.classify_email(context) for context in contexts]

    async def record_feedback(
        self,
        email_id: str,
        feedback: ClassificationFeedback,
        classification: ClassificationResult | None = None,
    ) -> FeedbackEvent:
        event = await self.learning_system.record_feedback(email_id, feedback, classification)
        if self.cache is not None:
            await self.cache.delete(self._cache_key(email_id))
        return event

    # -----------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------

    async def _lookup_vip(self, context: EmailContext, reasoning: list[str]) -> VIPContact | None:
        try:
            return await self.vip_manager.is_vip(context.sender)
        except UpstreamUnavailable as e:
            logger.warning("VIP lookup unavailable", email_id=context.id, error=str(e))
            reasoning.append("VIP list unavailable")
            return None

    async def _summarize(self, context: EmailContext, reasoning: list[str]) -> SummarizerHint | None:
        if self.summarizer is None:
            return None
        try:
            return await self.summarizer.summarize(context.subject, context.sender, context.body)
        except UpstreamUnavailable as e:
            logger.warning("Summarizer unavailable, continuing without hint", error=str(e))
            reasoning.append("AI summarizer unavailable")
            return None

    def _importance(self, context: EmailContext, vip: VIPContact | None, sentiment) -> float:
        factors = PriorityFactors(
            sender_importance=heuristics.sender_importance(context),
            keyword_urgency=heuristics.keyword_urgency(context),
            deadline_proximity=heuristics.deadline_proximity(context),
            vip_status=(1.0 - (vip.tier - 1) * 0.2) if vip else 0.0,
            historical_response=0.5,
            sentiment_urgency=heuristics.sentiment_urgency(sentiment),
            contextual_clues=heuristics.contextual_clues(context),
        )
        score = self.learning_system.calculate_priority_score(factors)
        if vip is not None:
            score = max(score, self.vip_manager.importance_for(vip))
        return score

    async def _classify(self, context: EmailContext) -> ClassificationResult:
        reasoning: list[str] = []
        labels: list[str] = []
        action_groups: list[Iterable[RuleAction]] = []

        # 1. VIP check
        vip = await self._lookup_vip(context, reasoning)
        floor: Priority | None = None
        if vip is not None:
            floor = self.vip_manager.priority_floor(vip)
            labels += self.vip_manager.labels_for(vip)
            action_groups.append(self.vip_manager.actions_for(vip))
            reasoning.append(f"VIP tier {vip.tier} sender ({vip.pattern}), priority floor {floor}")

        # 2. Rules
        matches = await self.rules_engine.evaluate_rules(context)
        applied_rules = tuple(m.rule.id for m in matches)
        priority: Priority | None = None
        category = "other"
        confidence = VIP_CONFIDENCE if vip is not None else 0.0
        method = ClassificationMethod.RULE
        rule_confident = False

        if matches:
            primary = matches[0]
            labels += primary.rule.labels
            action_groups.append(primary.rule.actions)
            priority = priority_for_rule(primary.rule)
            category = category_for_labels(primary.rule.labels)
            confidence = max(confidence, primary.confidence)
            rule_confident = primary.confidence >= self.settings.RULE_CONFIDENCE_THRESHOLD
            reasoning.append(
                f"Rule '{primary.rule.name}' matched (precedence {primary.rule.precedence}, "
                f"confidence {primary.confidence:.2f})"
            )
            if len(matches) > 1:
                reasoning.append(f"{len(matches) - 1} lower-ranked rule(s) also matched")

        # 3. Learning or heuristic baseline
        suggestion = None
        if not rule_confident:
            suggestion = self.learning_system.suggest_category_for_email(
                context.subject, context.sender, context.body
            )
            if suggestion is not None:
                method = ClassificationMethod.HYBRID
                if category == "other":
                    category = suggestion.category
                confidence = max(confidence, suggestion.confidence)
                reasoning.append(
                    f"Learned category '{suggestion.category}' from {suggestion.source} "
                    f"(confidence {suggestion.confidence:.2f})"
                )

        if priority is None:
            priority = heuristics.baseline_priority(context)
            reasoning.append(f"Heuristic baseline priority {priority}")
        if not matches and suggestion is None and vip is None:
            confidence = BASELINE_CONFIDENCE
            labels.append("PA-Unclassified")

        # Optional AI hint, merged by weight
        sentiment = heuristics.detect_sentiment(context)
        hint = await self._summarize(context, reasoning)
        needs_reply = heuristics.needs_reply(context)

        if hint is not None:
            ai_weight, rule_weight = self.settings.AI_WEIGHT, self.settings.RULES_WEIGHT
            total_weight = ai_weight + rule_weight
            if hint.priority is not None:
                merged_rank = (hint.priority.rank * ai_weight + priority.rank * rule_weight) / total_weight
                priority = Priority.from_rank(merged_rank)
            if hint.category and (
                category == "other" or hint.confidence * ai_weight > confidence * rule_weight
            ):
                category = hint.category
            signals = bool(matches) or suggestion is not None or vip is not None
            confidence = (hint.confidence * ai_weight + confidence * rule_weight) / total_weight
            method = ClassificationMethod.HYBRID if signals else ClassificationMethod.AI
            if hint.sentiment is not None:
                sentiment = hint.sentiment
            if hint.needs_reply:
                needs_reply = True
            reasoning.append(
                f"AI hint: {hint.category or 'no category'}/{hint.priority or 'no priority'} "
                f"(confidence {hint.confidence:.2f}){': ' + hint.reasoning if hint.reasoning else ''}"
            )

        # 4. Flags
        waiting = heuristics.waiting_on_others(context)
        newsletter = heuristics.is_newsletter(context)
        automated = heuristics.is_automated(context)
        recurring = heuristics.is_recurring(context)

        # Learned importance adjusts heuristic priorities, never rule decisions downward
        importance = self._importance(context, vip, sentiment)
        if importance > 80 and priority == Priority.LOW:
            priority = Priority.MEDIUM
            reasoning.append(f"Importance {importance:.0f} lifted LOW to MEDIUM")
        elif importance < 20 and priority == Priority.HIGH and not matches:
            priority = Priority.MEDIUM
            reasoning.append(f"Importance {importance:.0f} lowered HIGH to MEDIUM")

        if floor is not None and priority.rank < floor.rank:
            reasoning.append(f"Priority raised from {priority} to VIP floor {floor}")
            priority = floor

        # Confidence
        if vip is not None:
            confidence = min(confidence + VIP_CONFIDENCE_BOOST, MAX_VIP_CONFIDENCE)
        if method == ClassificationMethod.HYBRID and not matches:
            confidence *= HYBRID_NO_RULE_FACTOR
        if importance < 30:
            confidence *= LOW_IMPORTANCE_FACTOR
        confidence = round(max(0.0, min(1.0, confidence)), 4)

        # 5. Suggested actions
        final_labels = _unique(labels)
        heuristic_actions: list[RuleAction] = [LabelAction(label) for label in final_labels]
        if priority in (Priority.CRITICAL, Priority.HIGH):
            heuristic_actions.append(StarAction())
        if newsletter and confidence >= ARCHIVE_CONFIDENCE and vip is None:
            heuristic_actions.append(ArchiveAction())
        action_groups.append(heuristic_actions)

        return ClassificationResult(
            email_id=context.id,
            priority=priority,
            category=category,
            labels=final_labels,
            needs_reply=needs_reply,
            waiting_on_others=waiting,
            sentiment=sentiment,
            suggested_actions=merge_actions(*action_groups),
            confidence=confidence,
            method=method,
            reasoning="; ".join(reasoning),
            applied_rules=applied_rules,
            is_vip=vip is not None,
            vip_tier=vip.tier if vip else None,
            feedback_required=(
                vip is not None or confidence < self.settings.FEEDBACK_CONFIDENCE_THRESHOLD
            ),
            is_recurring=recurring,
            is_newsletter=newsletter,
            is_automated=automated,
            importance=importance,
            urgency=heuristics.urgency_score(context, priority),
            classified_at=self._clock(),
        )
