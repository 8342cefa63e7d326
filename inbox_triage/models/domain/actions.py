"""
Suggested and rule-driven actions.

Each action kind is its own type; `RuleAction` is the closed union. The
wire shape is {"type": ..., "value": ...} with value omitted for kinds
that carry nothing.
"""

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True, slots=True)
class LabelAction:
    value: str
    type: ClassVar[str] = "label"


@dataclass(frozen=True, slots=True)
class StarAction:
    type: ClassVar[str] = "star"

    @property
    def value(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class ForwardAction:
    target: str
    type: ClassVar[str] = "forward"

    @property
    def value(self) -> str:
        return self.target


@dataclass(frozen=True, slots=True)
class ArchiveAction:
    type: ClassVar[str] = "archive"

    @property
    def value(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class MarkImportantAction:
    type: ClassVar[str] = "markImportant"

    @property
    def value(self) -> None:
        return None


RuleAction = LabelAction | StarAction | ForwardAction | ArchiveAction | MarkImportantAction


def action_key(action: RuleAction) -> tuple[str, str | None]:
    return action.type, action.value


def action_to_dict(action: RuleAction) -> dict[str, Any]:
    data: dict[str, Any] = {"type": action.type}
    if action.value is not None:
        data["value"] = action.value
    return data


def action_from_dict(data: dict[str, Any]) -> RuleAction:
    """Parse a stored action; raises ValueError on unknown or incomplete kinds."""
    kind = data.get("type")
    value = data.get("value")

    if kind == LabelAction.type:
        if not value:
            raise ValueError("label action requires a value")
        return LabelAction(str(value))
    if kind == ForwardAction.type:
        target = value or data.get("target")
        if not target:
            raise ValueError("forward action requires a target")
        return ForwardAction(str(target))
    if kind == StarAction.type:
        return StarAction()
    if kind == ArchiveAction.type:
        return ArchiveAction()
    if kind == MarkImportantAction.type:
        return MarkImportantAction()

    raise ValueError(f"Unknown action type: {kind!r}")


def merge_actions(*groups) -> tuple[RuleAction, ...]:
    """Concatenate action groups keeping the first of each type+value pair."""
    seen: set[tuple[str, str | None]] = set()
    merged: list[RuleAction] = []
    for group in groups:
        for action in group:
            key = action_key(action)
            if key in seen:
                continue
            seen.add(key)
            merged.append(action)
    return tuple(merged)
