"""
Rules engine: precedence-ordered, user-defined rules evaluated per message.

Conditions are ANDed. Each field and operator is a closed enum mapped to an
explicit getter or evaluator below. A rule that cannot be parsed from its
stored record is skipped and logged, never fatal to the remaining rules.
"""

import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from inbox_triage.config import Settings
from inbox_triage.core.errors import NotFoundError, UpstreamUnavailable, ValidationError
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.email import EmailContext
from inbox_triage.models.domain.enums import Priority, RuleField, RuleOperator, TieBreak
from inbox_triage.models.domain.rule import Rule, RuleCondition, RuleMatch
from inbox_triage.repositories.base import RuleRepository

logger = get_logger(__name__)

MATCH_BONUS_PER_CONDITION = 0.05
LONG_THREAD_BONUS = 0.05
LONG_THREAD_MESSAGES = 2
MAX_MATCH_CONFIDENCE = 0.95

# =================================================================
# FIELD GETTERS AND OPERATOR EVALUATORS
# =================================================================

FIELD_GETTERS: dict[RuleField, Callable[[EmailContext], list[str]]] = {
    RuleField.SUBJECT: lambda ctx: [ctx.subject] if ctx.subject else [],
    RuleField.FROM: lambda ctx: [ctx.sender] if ctx.sender else [],
    RuleField.TO: lambda ctx: [addr for addr in ctx.to if addr],
    RuleField.BODY: lambda ctx: [ctx.body] if ctx.body else [],
}

OPERATOR_EVALUATORS: dict[RuleOperator, Callable[[str, str], bool]] = {
    RuleOperator.CONTAINS: lambda target, value: value in target,
    RuleOperator.EQUALS: lambda target, value: target == value,
    RuleOperator.STARTS_WITH: lambda target, value: target.startswith(value),
    RuleOperator.ENDS_WITH: lambda target, value: target.endswith(value),
}


def evaluate_condition(condition: RuleCondition, context: EmailContext) -> bool:
    """True if any value of the target field satisfies the condition."""
    targets = FIELD_GETTERS[condition.field](context)
    if not targets:
        return False

    evaluator = OPERATOR_EVALUATORS[condition.operator]
    value = condition.value if condition.case_sensitive else condition.value.lower()

    for target in targets:
        candidate = target if condition.case_sensitive else target.lower()
        if evaluator(candidate, value):
            return True
    return False


def match_confidence(rule: Rule, matched: int, context: EmailContext) -> float:
    confidence = rule.confidence + MATCH_BONUS_PER_CONDITION * matched
    if context.thread and context.thread.message_count > LONG_THREAD_MESSAGES:
        confidence += LONG_THREAD_BONUS
    return min(confidence, MAX_MATCH_CONFIDENCE)


# =================================================================
# RULE-DERIVED PRIORITY AND CATEGORY
# =================================================================

LABEL_CATEGORIES = {
    "PA-Work": "work",
    "PA-Meeting": "work",
    "PA-Personal": "personal",
    "PA-Finance": "finance",
    "PA-Newsletter": "newsletter",
    "PA-Shopping": "shopping",
    "PA-Travel": "travel",
    "PA-Support": "support",
}

HIGH_PRIORITY_LABELS = {"PA-Priority", "PA-Urgent"}
LOW_PRIORITY_LABELS = {"PA-Newsletter", "PA-FYI"}


def priority_for_rule(rule: Rule) -> Priority:
    labels = set(rule.labels)
    if labels & HIGH_PRIORITY_LABELS:
        return Priority.HIGH
    if labels & LOW_PRIORITY_LABELS:
        return Priority.LOW
    if rule.precedence >= 90:
        return Priority.HIGH
    if rule.precedence >= 60:
        return Priority.MEDIUM
    return Priority.LOW


def category_for_labels(labels: Iterable[str]) -> str:
    for label in labels:
        if label in LABEL_CATEGORIES:
            return LABEL_CATEGORIES[label]
    return "other"


# =================================================================
# BUILT-IN RULES
# =================================================================


def _default_record(
    rule_id: str,
    name: str,
    precedence: int,
    conditions: list[tuple[str, str, str]],
    actions: list[dict[str, Any]],
    confidence: float,
) -> dict[str, Any]:
    return {
        "id": rule_id,
        "name": name,
        "precedence": precedence,
        "conditions": [{"field": f, "operator": op, "value": v} for f, op, v in conditions],
        "actions": actions,
        "enabled": True,
        "confidence": confidence,
        "created_at": "2024-01-01T00:00:00+00:00",
    }


DEFAULT_RULE_RECORDS: list[dict[str, Any]] = [
    _default_record(
        "default-urgent",
        "Urgent subject",
        100,
        [("subject", "contains", "urgent")],
        [{"type": "label", "value": "PA-Priority"}, {"type": "star"}],
        0.9,
    ),
    _default_record(
        "default-finance",
        "Finance invoice",
        90,
        [("subject", "contains", "invoice")],
        [{"type": "label", "value": "PA-Finance"}, {"type": "star"}],
        0.85,
    ),
    _default_record(
        "default-meeting",
        "Meeting request",
        80,
        [("subject", "contains", "meeting")],
        [{"type": "label", "value": "PA-Meeting"}],
        0.8,
    ),
    _default_record(
        "default-support",
        "Support ticket",
        70,
        [("subject", "contains", "ticket")],
        [{"type": "label", "value": "PA-Support"}],
        0.8,
    ),
    _default_record(
        "default-newsletter",
        "Newsletter",
        50,
        [("body", "contains", "unsubscribe"), ("from", "contains", "newsletter")],
        [{"type": "label", "value": "PA-Newsletter"}, {"type": "archive"}],
        0.85,
    ),
    _default_record(
        "default-noreply",
        "No-reply sender",
        30,
        [("from", "startsWith", "noreply")],
        [{"type": "label", "value": "PA-Automated"}, {"type": "archive"}],
        0.75,
    ),
]


class RulesEngine:
    """
    Loads rules from the rule store (cached per instance) and evaluates
    them against a message. Evaluation has no side effects.
    """

    def __init__(
        self,
        repository: RuleRepository,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.tie_break = settings.RULE_TIE_BREAK
        self.reload_interval = timedelta(seconds=settings.RULES_RELOAD_SECONDS)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._rules: list[Rule] | None = None
        self._loaded_at: datetime | None = None

    # -----------------------------------------------------------------
    # Loading
    # -----------------------------------------------------------------

    @staticmethod
    def parse_records(records: Iterable[dict[str, Any]]) -> list[Rule]:
        rules: list[Rule] = []
        for record in records:
            try:
                rules.append(Rule.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Skipping malformed rule",
                    rule_id=record.get("id") if isinstance(record, dict) else None,
                    error=str(e),
                )
        return rules

    async def load_rules(self, force: bool = False) -> list[Rule]:
        now = self._clock()
        fresh = (
            self._rules is not None
            and self._loaded_at is not None
            and now - self._loaded_at < self.reload_interval
        )
        if fresh and not force:
            return self._rules

        try:
            records = await self.repository.list_records()
        except UpstreamUnavailable as e:
            if self._rules is not None:
                logger.warning("Rule store unavailable, keeping cached rules", error=str(e))
                return self._rules
            logger.warning("Rule store unavailable, using built-in rules", error=str(e))
            return self.parse_records(DEFAULT_RULE_RECORDS)

        self._rules = self.parse_records(records)
        self._loaded_at = now
        logger.debug("Rules loaded", rule_count=len(self._rules))
        return self._rules

    def invalidate(self) -> None:
        self._rules = None
        self._loaded_at = None

    # -----------------------------------------------------------------
    # Evaluation
    # -----------------------------------------------------------------

    def _sort_key(self, match: RuleMatch) -> tuple:
        created = match.rule.created_at.timestamp()
        if self.tie_break == TieBreak.LATER_CREATED:
            created = -created
        return (-match.rule.precedence, -match.rule.confidence, created, match.rule.id)

    def evaluate(self, rules: Iterable[Rule], context: EmailContext) -> list[RuleMatch]:
        """Match `rules` against `context`, ordered by precedence then confidence."""
        matches: list[RuleMatch] = []

        for rule in rules:
            if not rule.enabled:
                continue
            try:
                if all(evaluate_condition(c, context) for c in rule.conditions):
                    matches.append(
                        RuleMatch(
                            rule=rule,
                            confidence=match_confidence(rule, len(rule.conditions), context),
                            matched_conditions=rule.conditions,
                        )
                    )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping rule that failed to evaluate", rule_id=rule.id, error=str(e))

        matches.sort(key=self._sort_key)
        return matches

    async def evaluate_rules(self, context: EmailContext) -> list[RuleMatch]:
        rules = await self.load_rules()
        matches = self.evaluate(rules, context)
        if matches:
            logger.debug(
                "Rules matched",
                email_id=context.id,
                rule_ids=[m.rule.id for m in matches],
            )
        return matches

    # -----------------------------------------------------------------
    # Administration
    # -----------------------------------------------------------------

    async def get_rule(self, rule_id: str) -> Rule:
        record = await self.repository.get_record(rule_id)
        if record is None:
            raise NotFoundError("rule", rule_id)
        try:
            return Rule.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Stored rule {rule_id} is malformed: {e}") from e

    async def create_rule(self, record: dict[str, Any]) -> Rule:
        """Validate and store a new rule; assigns id and created_at if absent."""
        record = dict(record)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault("created_at", self._clock().isoformat())
        record.setdefault("enabled", True)

        rule = self._validate(record)
        if await self.repository.get_record(rule.id) is not None:
            raise ValidationError(f"Rule already exists: {rule.id}", field="id")

        await self.repository.upsert_record(rule.to_record())
        self.invalidate()
        logger.info("Rule created", rule_id=rule.id, precedence=rule.precedence)
        return rule

    async def update_rule(self, rule_id: str, patch: dict[str, Any]) -> Rule:
        existing = await self.repository.get_record(rule_id)
        if existing is None:
            raise NotFoundError("rule", rule_id)

        merged = {**existing, **patch, "id": rule_id, "created_at": existing.get("created_at")}
        rule = self._validate(merged)
        await self.repository.upsert_record(rule.to_record())
        self.invalidate()
        logger.info("Rule updated", rule_id=rule_id, fields=sorted(patch))
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        if not await self.repository.delete_record(rule_id):
            raise NotFoundError("rule", rule_id)
        self.invalidate()
        logger.info("Rule deleted", rule_id=rule_id)

    async def seed_default_rules(self) -> int:
        """Store built-in rules that are not already present."""
        created = 0
        for record in DEFAULT_RULE_RECORDS:
            if await self.repository.get_record(record["id"]) is None:
                await self.repository.upsert_record(record)
                created += 1
        self.invalidate()
        logger.info("Default rules seeded", created=created)
        return created

    async def get_rule_statistics(self, top: int = 5) -> dict[str, Any]:
        rules = await self.load_rules(force=True)
        enabled = [r for r in rules if r.enabled]
        average = sum(r.confidence for r in rules) / len(rules) if rules else 0.0
        ordered = sorted(rules, key=lambda r: (-r.precedence, r.created_at.timestamp()))

        return {
            "total_rules": len(rules),
            "enabled_rules": len(enabled),
            "average_confidence": round(average, 3),
            "top_rules": [
                {"id": r.id, "name": r.name, "precedence": r.precedence} for r in ordered[:top]
            ],
        }

    @staticmethod
    def _validate(record: dict[str, Any]) -> Rule:
        confidence = record.get("confidence", 0.8)
        if not isinstance(confidence, int | float) or not 0.0 <= confidence <= 1.0:
            raise ValidationError("confidence must be between 0 and 1", field="confidence")
        try:
            return Rule.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid rule: {e}") from e
