from datetime import UTC, datetime, timedelta

import pytest

from inbox_triage.config import Settings
from inbox_triage.features.classifier import ClassificationEngine, LearningSystem, RulesEngine
from inbox_triage.features.followup import FollowUpQueue, SLATracker, SnoozeEngine
from inbox_triage.features.vip import VIPManager
from inbox_triage.repositories import (
    InMemoryFeedbackLog,
    InMemoryFollowUpRepository,
    InMemoryHistoryLog,
    InMemoryRuleRepository,
    InMemoryVipRepository,
)

# Monday 2025-01-06 10:00 UTC, inside 9-17 working hours
MONDAY_10AM = datetime(2025, 1, 6, 10, 0, tzinfo=UTC)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        TIMEZONE="UTC",
        DATABASE_URL=None,
        REDIS_URL=None,
        AI_CLASSIFICATION_ENABLED=False,
        OPENAI_API_KEY=None,
    )


@pytest.fixture
def clock():
    return FrozenClock(MONDAY_10AM)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def followup_repository():
    return InMemoryFollowUpRepository()


@pytest.fixture
def history_log():
    return InMemoryHistoryLog()


@pytest.fixture
def rule_repository():
    return InMemoryRuleRepository()


@pytest.fixture
def vip_repository():
    return InMemoryVipRepository()


@pytest.fixture
def feedback_log():
    return InMemoryFeedbackLog()


@pytest.fixture
def sla_tracker(settings, clock):
    return SLATracker(settings, clock)


@pytest.fixture
def snooze_engine(settings, clock):
    return SnoozeEngine(settings, clock)


@pytest.fixture
def queue(followup_repository, history_log, sla_tracker, settings, clock):
    return FollowUpQueue(followup_repository, history_log, sla_tracker, settings, clock)


@pytest.fixture
def rules_engine(rule_repository, settings, clock):
    return RulesEngine(rule_repository, settings, clock)


@pytest.fixture
def vip_manager(vip_repository, settings, clock):
    return VIPManager(vip_repository, settings, clock)


@pytest.fixture
def learning_system(feedback_log, settings, clock):
    return LearningSystem(feedback_log, settings, clock)


@pytest.fixture
def classification_engine(rules_engine, vip_manager, learning_system, settings, fake_redis, clock):
    return ClassificationEngine(
        rules_engine,
        vip_manager,
        learning_system,
        settings,
        cache=fake_redis,
        clock=clock,
    )
