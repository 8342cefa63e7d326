"""
Domain models for the triage engine.

Plain dataclasses and closed enums with no I/O, shared by the classifier,
the follow-up queue, the repositories, and the API layer.
"""

from inbox_triage.models.domain.actions import (
    ArchiveAction,
    ForwardAction,
    LabelAction,
    MarkImportantAction,
    RuleAction,
    StarAction,
)
from inbox_triage.models.domain.classification import (
    CategorySuggestion,
    ClassificationFeedback,
    ClassificationResult,
    FeedbackEvent,
    LearningExample,
    LearningStatistics,
    PriorityFactors,
    SummarizerHint,
)
from inbox_triage.models.domain.email import EmailContext, EmailMeta, ThreadMetadata
from inbox_triage.models.domain.enums import (
    ClassificationMethod,
    FeedbackType,
    FollowUpReason,
    HistoryAction,
    Priority,
    QueueStatus,
    RuleField,
    RuleOperator,
    Sentiment,
    SLAStatus,
    TieBreak,
)
from inbox_triage.models.domain.queue import (
    BulkFailure,
    BulkOperationResult,
    FollowUpItem,
    QueueFilter,
    QueueHistoryEntry,
    QueueStatistics,
    SnoozeChoice,
    SnoozeOptions,
    SnoozeRequest,
    SnoozeSuggestion,
    TimeRemaining,
)
from inbox_triage.models.domain.rule import Rule, RuleCondition, RuleMatch
from inbox_triage.models.domain.vip import CorrespondentStats, VIPContact, VIPSuggestion

__all__ = [
    "ArchiveAction",
    "BulkFailure",
    "BulkOperationResult",
    "CategorySuggestion",
    "ClassificationFeedback",
    "ClassificationMethod",
    "ClassificationResult",
    "CorrespondentStats",
    "EmailContext",
    "EmailMeta",
    "FeedbackEvent",
    "FeedbackType",
    "FollowUpItem",
    "FollowUpReason",
    "ForwardAction",
    "HistoryAction",
    "LabelAction",
    "LearningExample",
    "LearningStatistics",
    "MarkImportantAction",
    "Priority",
    "PriorityFactors",
    "QueueFilter",
    "QueueHistoryEntry",
    "QueueStatistics",
    "QueueStatus",
    "Rule",
    "RuleAction",
    "RuleCondition",
    "RuleField",
    "RuleMatch",
    "RuleOperator",
    "SLAStatus",
    "Sentiment",
    "SnoozeChoice",
    "SnoozeOptions",
    "SnoozeRequest",
    "SnoozeSuggestion",
    "StarAction",
    "SummarizerHint",
    "TieBreak",
    "TimeRemaining",
    "VIPContact",
    "VIPSuggestion",
]
