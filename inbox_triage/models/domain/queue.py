"""
Follow-up queue records and the shapes its operations return.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from inbox_triage.models.domain.enums import (
    FollowUpReason,
    HistoryAction,
    Priority,
    QueueStatus,
    SLAStatus,
)


@dataclass(slots=True)
class FollowUpItem:
    """The persisted queue record. Only FollowUpQueue writes these."""

    id: str
    email_id: str
    thread_id: str
    subject: str = ""
    sender: str = ""
    to: list[str] = field(default_factory=list)
    received_date: datetime | None = None
    priority: Priority = Priority.MEDIUM
    category: str = "other"
    labels: list[str] = field(default_factory=list)
    status: QueueStatus = QueueStatus.PENDING
    reason: FollowUpReason = FollowUpReason.CUSTOM
    sla_deadline: datetime | None = None
    sla_status: SLAStatus | None = None
    sla_alerted_at: datetime | None = None
    # VIP override captured at admission; None follows the priority table
    sla_allowance_hours: float | None = None
    snoozed_until: datetime | None = None
    snoozed_at: datetime | None = None
    snooze_reason: str | None = None
    snooze_count: int = 0
    action_count: int = 0
    last_action_date: datetime | None = None
    ai_reasoning: str | None = None
    is_vip: bool = False
    vip_tier: int | None = None
    suggested_actions: list[str] = field(default_factory=list)
    importance: float | None = None
    added_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(slots=True)
class SnoozeOptions:
    until: datetime
    reason: str | None = None
    smart: bool = False
    ai_reasoning: str | None = None


@dataclass(slots=True)
class QueueFilter:
    statuses: list[QueueStatus] | None = None
    priorities: list[Priority] | None = None
    reason: FollowUpReason | None = None
    sla_status: SLAStatus | None = None
    category: str | None = None
    sort_by: str = "priority"  # priority | sla_deadline | received_date
    descending: bool = False
    limit: int | None = None
    offset: int = 0


@dataclass(slots=True)
class BulkFailure:
    id: str
    error: str
    message: str = ""


@dataclass(slots=True)
class BulkOperationResult:
    successful: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.successful) + len(self.failed)

    def raise_for_failures(self) -> None:
        from inbox_triage.core.errors import PartialBatchFailure

        if self.failed:
            raise PartialBatchFailure(
                f"{len(self.failed)} of {self.total_processed} items failed",
                failures=[(f.id, f.error) for f in self.failed],
            )


@dataclass(slots=True)
class QueueStatistics:
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_sla_status: dict[str, int]
    average_response_time_hours: float | None
    average_time_in_queue_hours: float | None
    average_wait_time_hours: float | None
    average_snooze_duration_hours: float | None
    completed_today: int
    completed_this_week: int
    as_of: datetime


@dataclass(slots=True)
class QueueHistoryEntry:
    item_id: str
    action: HistoryAction
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TimeRemaining:
    hours: int
    minutes: int
    is_overdue: bool


@dataclass(frozen=True, slots=True)
class SnoozeChoice:
    time: datetime
    reason: str
    label: str | None = None


@dataclass(frozen=True, slots=True)
class SnoozeSuggestion:
    suggested_time: datetime
    reasoning: str
    confidence: float
    alternatives: tuple[SnoozeChoice, ...]


@dataclass(frozen=True, slots=True)
class SnoozeRequest:
    """Input to the smart snooze advisor."""

    subject: str = ""
    body: str = ""
    priority: Priority = Priority.MEDIUM
    sender: str | None = None
    received_date: datetime | None = None
