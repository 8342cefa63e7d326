"""Domain models for the VIP sender list."""

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(slots=True)
class VIPContact:
    """An important sender, matched by exact address or domain glob."""

    pattern: str
    display_name: str | None = None
    tier: int = 3
    auto_draft: bool = False
    sla_hours: float | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_glob(self) -> bool:
        return "*" in self.pattern or "?" in self.pattern


@dataclass(slots=True)
class CorrespondentStats:
    """Per-sender traffic summary supplied by the message store."""

    email: str
    display_name: str | None = None
    message_count: int = 0
    important_count: int = 0
    replied_count: int = 0


@dataclass(slots=True)
class VIPSuggestion:
    email: str
    display_name: str | None
    suggested_tier: int
    reason: str
    score: float
    suggested_sla_hours: float | None = None
