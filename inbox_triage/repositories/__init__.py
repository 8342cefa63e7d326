"""
Persistence adapters for the triage engine.

`base` holds the interfaces; `memory` and `postgres` implement them.
"""

from inbox_triage.repositories.base import (
    FeedbackLog,
    FollowUpRepository,
    HistoryLog,
    RuleRepository,
    VipRepository,
)
from inbox_triage.repositories.memory import (
    InMemoryFeedbackLog,
    InMemoryFollowUpRepository,
    InMemoryHistoryLog,
    InMemoryRuleRepository,
    InMemoryVipRepository,
)

__all__ = [
    "FeedbackLog",
    "FollowUpRepository",
    "HistoryLog",
    "InMemoryFeedbackLog",
    "InMemoryFollowUpRepository",
    "InMemoryHistoryLog",
    "InMemoryRuleRepository",
    "InMemoryVipRepository",
    "RuleRepository",
    "VipRepository",
]
