"""
User-defined classification rules.

Rules are stored as plain records (dicts) so a hand-edited or legacy row
can be malformed; `Rule.from_record` is the single place that turns a
record into a typed rule and raises ValueError when it cannot.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from inbox_triage.models.domain.actions import RuleAction, action_from_dict, action_to_dict
from inbox_triage.models.domain.enums import RuleField, RuleOperator


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True, slots=True)
class RuleCondition:
    field: RuleField
    operator: RuleOperator
    value: str
    case_sensitive: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RuleCondition":
        value = record.get("value")
        if value is None or str(value) == "":
            raise ValueError("condition value is required")
        return cls(
            field=RuleField(record["field"]),
            operator=RuleOperator(record["operator"]),
            value=str(value),
            case_sensitive=bool(record.get("case_sensitive", record.get("caseSensitive", False))),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "field": self.field.value,
            "operator": self.operator.value,
            "value": self.value,
            "case_sensitive": self.case_sensitive,
        }


@dataclass(frozen=True, slots=True)
class Rule:
    id: str
    name: str
    precedence: int
    conditions: tuple[RuleCondition, ...]
    actions: tuple[RuleAction, ...]
    enabled: bool = True
    confidence: float = 0.8
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))

    @property
    def labels(self) -> list[str]:
        return [action.value for action in self.actions if action.type == "label"]

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Rule":
        if not record.get("id"):
            raise ValueError("rule id is required")
        if not record.get("name"):
            raise ValueError("rule name is required")

        conditions = tuple(RuleCondition.from_record(c) for c in record.get("conditions") or [])
        if not conditions:
            raise ValueError("rule must have at least one condition")

        actions = tuple(action_from_dict(a) for a in record.get("actions") or [])
        if not actions:
            raise ValueError("rule must have at least one action")

        created_at = record.get("created_at") or record.get("createdAt")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if created_at is None:
            created_at = datetime.fromtimestamp(0, UTC)

        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            precedence=int(record.get("precedence", 0)),
            conditions=conditions,
            actions=actions,
            enabled=bool(record.get("enabled", True)),
            confidence=float(record.get("confidence", 0.8)),
            created_at=created_at,
            description=record.get("description"),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "precedence": self.precedence,
            "conditions": [c.to_record() for c in self.conditions],
            "actions": [action_to_dict(a) for a in self.actions],
            "enabled": self.enabled,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class RuleMatch:
    rule: Rule
    confidence: float
    matched_conditions: tuple[RuleCondition, ...]
