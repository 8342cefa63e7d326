"""
Boundary models for the triage engine.

Used by the API layer for output formatting and by the Postgres
repositories as the JSONB payload shape. `model_dump(mode="json")` gives
ISO-8601 timestamps and plain enum strings.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from inbox_triage.models.domain.actions import RuleAction, action_from_dict, action_to_dict
from inbox_triage.models.domain.classification import (
    ClassificationFeedback,
    ClassificationResult,
    FeedbackEvent,
)
from inbox_triage.models.domain.enums import (
    ClassificationMethod,
    FeedbackType,
    FollowUpReason,
    HistoryAction,
    Priority,
    QueueStatus,
    Sentiment,
    SLAStatus,
)
from inbox_triage.models.domain.queue import (
    BulkOperationResult,
    FollowUpItem,
    QueueHistoryEntry,
    QueueStatistics,
)
from inbox_triage.models.domain.vip import VIPContact


class SuggestedActionResponse(BaseModel):
    """One suggested action in {type, value?} form."""

    type: str = Field(..., description="Action kind (label, star, forward, archive, markImportant)")
    value: str | None = Field(None, description="Label name or forward target")

    @classmethod
    def from_domain(cls, action: RuleAction) -> "SuggestedActionResponse":
        return cls(**action_to_dict(action))

    def to_domain(self) -> RuleAction:
        return action_from_dict(self.model_dump(exclude_none=True))


class ClassificationResultResponse(BaseModel):
    """Response model for a classification decision."""

    email_id: str = Field(..., description="Classified message ID")
    priority: Priority = Field(..., description="CRITICAL, HIGH, MEDIUM or LOW")
    category: str = Field(..., description="Free-form category")
    labels: list[str] = Field(default_factory=list, description="Labels to apply")
    needs_reply: bool = Field(..., description="Whether the user is expected to reply")
    waiting_on_others: bool = Field(..., description="Whether the user awaits someone else")
    sentiment: Sentiment = Field(..., description="Detected sentiment")
    suggested_actions: list[SuggestedActionResponse] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0, description="Decision confidence")
    method: ClassificationMethod = Field(..., description="RULE, AI or HYBRID")
    reasoning: str = Field(..., description="Trace of every stage that contributed")
    applied_rules: list[str] = Field(default_factory=list, description="Matched rule IDs")
    is_vip: bool = Field(default=False, description="Sender is on the VIP list")
    vip_tier: int | None = Field(None, description="VIP tier when is_vip")
    feedback_required: bool = Field(default=False, description="User confirmation requested")
    is_recurring: bool = False
    is_newsletter: bool = False
    is_automated: bool = False
    importance: float = Field(default=50.0, description="Learned importance score (0-100)")
    urgency: float = Field(default=50.0, description="Urgency score (0-100)")
    classified_at: datetime = Field(..., description="When the decision was made")

    @classmethod
    def from_domain(cls, result: ClassificationResult) -> "ClassificationResultResponse":
        return cls(
            email_id=result.email_id,
            priority=result.priority,
            category=result.category,
            labels=list(result.labels),
            needs_reply=result.needs_reply,
            waiting_on_others=result.waiting_on_others,
            sentiment=result.sentiment,
            suggested_actions=[
                SuggestedActionResponse.from_domain(a) for a in result.suggested_actions
            ],
            confidence=result.confidence,
            method=result.method,
            reasoning=result.reasoning,
            applied_rules=list(result.applied_rules),
            is_vip=result.is_vip,
            vip_tier=result.vip_tier,
            feedback_required=result.feedback_required,
            is_recurring=result.is_recurring,
            is_newsletter=result.is_newsletter,
            is_automated=result.is_automated,
            importance=result.importance,
            urgency=result.urgency,
            classified_at=result.classified_at,
        )

    def to_domain(self) -> ClassificationResult:
        return ClassificationResult(
            email_id=self.email_id,
            priority=self.priority,
            category=self.category,
            labels=tuple(self.labels),
            needs_reply=self.needs_reply,
            waiting_on_others=self.waiting_on_others,
            sentiment=self.sentiment,
            suggested_actions=tuple(a.to_domain() for a in self.suggested_actions),
            confidence=self.confidence,
            method=self.method,
            reasoning=self.reasoning,
            applied_rules=tuple(self.applied_rules),
            is_vip=self.is_vip,
            vip_tier=self.vip_tier,
            feedback_required=self.feedback_required,
            is_recurring=self.is_recurring,
            is_newsletter=self.is_newsletter,
            is_automated=self.is_automated,
            importance=self.importance,
            urgency=self.urgency,
            classified_at=self.classified_at,
        )


class FollowUpItemResponse(BaseModel):
    """Response (and storage) model for a follow-up queue item."""

    id: str = Field(..., description="Queue item ID")
    email_id: str = Field(..., description="Source message ID")
    thread_id: str = Field(..., description="Source thread ID")
    subject: str = ""
    sender: str = Field(default="", description="From header")
    to: list[str] = Field(default_factory=list)
    received_date: datetime | None = None
    priority: Priority = Priority.MEDIUM
    category: str = "other"
    labels: list[str] = Field(default_factory=list)
    status: QueueStatus = QueueStatus.PENDING
    reason: FollowUpReason = FollowUpReason.CUSTOM
    sla_deadline: datetime | None = None
    sla_status: SLAStatus | None = None
    sla_alerted_at: datetime | None = None
    sla_allowance_hours: float | None = Field(None, description="VIP SLA override in hours")
    snoozed_until: datetime | None = None
    snoozed_at: datetime | None = None
    snooze_reason: str | None = None
    snooze_count: int = 0
    action_count: int = 0
    last_action_date: datetime | None = None
    ai_reasoning: str | None = None
    is_vip: bool = False
    vip_tier: int | None = None
    suggested_actions: list[str] = Field(default_factory=list)
    importance: float | None = None
    added_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, item: FollowUpItem) -> "FollowUpItemResponse":
        return cls(**{name: getattr(item, name) for name in cls.model_fields})

    def to_domain(self) -> FollowUpItem:
        return FollowUpItem(**{name: getattr(self, name) for name in type(self).model_fields})


class QueueStatisticsResponse(BaseModel):
    """Dashboard summary of the follow-up queue."""

    total: int = Field(..., description="All items in the store")
    by_status: dict[str, int] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict, description="Active items only")
    by_sla_status: dict[str, int] = Field(default_factory=dict, description="Active items only")
    average_response_time_hours: float | None = None
    average_time_in_queue_hours: float | None = None
    average_wait_time_hours: float | None = None
    average_snooze_duration_hours: float | None = None
    completed_today: int = 0
    completed_this_week: int = 0
    as_of: datetime = Field(..., description="When the statistics were computed")

    @classmethod
    def from_domain(cls, stats: QueueStatistics) -> "QueueStatisticsResponse":
        return cls(**{name: getattr(stats, name) for name in cls.model_fields})


class BulkFailureResponse(BaseModel):
    id: str
    error: str = Field(..., description="Error code, e.g. NotFound")
    message: str = ""


class BulkOperationResponse(BaseModel):
    """Bulk operation outcome: per-id successes and failures."""

    successful: list[str] = Field(default_factory=list)
    failed: list[BulkFailureResponse] = Field(default_factory=list)
    total_processed: int = 0

    @classmethod
    def from_domain(cls, result: BulkOperationResult) -> "BulkOperationResponse":
        return cls(
            successful=list(result.successful),
            failed=[
                BulkFailureResponse(id=f.id, error=f.error, message=f.message)
                for f in result.failed
            ],
            total_processed=result.total_processed,
        )


class VIPContactRecord(BaseModel):
    pattern: str
    display_name: str | None = None
    tier: int = Field(3, ge=1, le=3)
    auto_draft: bool = False
    sla_hours: float | None = None
    created_at: datetime

    @classmethod
    def from_domain(cls, vip: VIPContact) -> "VIPContactRecord":
        return cls(
            pattern=vip.pattern,
            display_name=vip.display_name,
            tier=vip.tier,
            auto_draft=vip.auto_draft,
            sla_hours=vip.sla_hours,
            created_at=vip.created_at,
        )

    def to_domain(self) -> VIPContact:
        return VIPContact(**self.model_dump())


class FeedbackEventRecord(BaseModel):
    email_id: str
    feedback_type: FeedbackType
    correct_value: str | None = None
    user_action: str | None = None
    timestamp: datetime
    category: str
    priority: Priority
    sequence: int = 0

    @classmethod
    def from_domain(cls, event: FeedbackEvent) -> "FeedbackEventRecord":
        feedback = event.feedback
        return cls(
            email_id=feedback.email_id,
            feedback_type=feedback.feedback_type,
            correct_value=feedback.correct_value,
            user_action=feedback.user_action,
            timestamp=feedback.timestamp,
            category=event.category,
            priority=event.priority,
            sequence=event.sequence,
        )

    def to_domain(self) -> FeedbackEvent:
        return FeedbackEvent(
            feedback=ClassificationFeedback(
                email_id=self.email_id,
                feedback_type=self.feedback_type,
                correct_value=self.correct_value,
                user_action=self.user_action,
                timestamp=self.timestamp,
            ),
            category=self.category,
            priority=self.priority,
            sequence=self.sequence,
        )


class QueueHistoryRecord(BaseModel):
    item_id: str
    action: HistoryAction
    timestamp: datetime
    details: dict = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, entry: QueueHistoryEntry) -> "QueueHistoryRecord":
        return cls(
            item_id=entry.item_id,
            action=entry.action,
            timestamp=entry.timestamp,
            details=entry.details,
        )

    def to_domain(self) -> QueueHistoryEntry:
        return QueueHistoryEntry(**self.model_dump())
