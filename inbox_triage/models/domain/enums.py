"""
Closed vocabularies shared by the classifier and the follow-up queue.

Values are the strings that cross the persistence and API boundary, so
renaming a member is a storage migration.
"""

from enum import StrEnum


class Priority(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        """Numeric weight, CRITICAL=4 down to LOW=1."""
        return _PRIORITY_RANK[self]

    @classmethod
    def from_rank(cls, value: float) -> "Priority":
        """Map a (possibly averaged) rank back onto the closed set."""
        if value >= 3.5:
            return cls.CRITICAL
        if value >= 2.5:
            return cls.HIGH
        if value >= 1.5:
            return cls.MEDIUM
        return cls.LOW

    def escalated(self) -> "Priority":
        """One level up; CRITICAL stays CRITICAL."""
        return Priority.from_rank(min(self.rank + 1, 4))

    def at_least(self, floor: "Priority") -> "Priority":
        return self if self.rank >= floor.rank else floor


_PRIORITY_RANK = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class ClassificationMethod(StrEnum):
    RULE = "RULE"
    AI = "AI"
    HYBRID = "HYBRID"


class Sentiment(StrEnum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"
    URGENT = "URGENT"


class RuleField(StrEnum):
    SUBJECT = "subject"
    FROM = "from"
    TO = "to"
    BODY = "body"


class RuleOperator(StrEnum):
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class TieBreak(StrEnum):
    EARLIER_CREATED = "earlier_created"
    LATER_CREATED = "later_created"


class QueueStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SNOOZED = "snoozed"
    ARCHIVED = "archived"

    @property
    def is_active(self) -> bool:
        return self in (QueueStatus.PENDING, QueueStatus.PROCESSING, QueueStatus.SNOOZED)


class FollowUpReason(StrEnum):
    NEEDS_REPLY = "NEEDS_REPLY"
    WAITING_ON_INFO = "WAITING_ON_INFO"
    REQUIRES_ACTION = "REQUIRES_ACTION"
    FOLLOW_UP_SCHEDULED = "FOLLOW_UP_SCHEDULED"
    DELEGATED = "DELEGATED"
    CUSTOM = "CUSTOM"
    VIP_REQUIRES_ATTENTION = "VIP_REQUIRES_ATTENTION"


class SLAStatus(StrEnum):
    ON_TIME = "ON_TIME"
    AT_RISK = "AT_RISK"
    OVERDUE = "OVERDUE"


class FeedbackType(StrEnum):
    CORRECT = "CORRECT"
    WRONG_PRIORITY = "WRONG_PRIORITY"
    WRONG_CATEGORY = "WRONG_CATEGORY"
    WRONG_LABELS = "WRONG_LABELS"
    MISSING_ACTION = "MISSING_ACTION"


class HistoryAction(StrEnum):
    ADDED = "ADDED"
    UPDATED = "UPDATED"
    SNOOZED = "SNOOZED"
    RESURFACED = "RESURFACED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"
    ESCALATED = "ESCALATED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    REMOVED = "REMOVED"
