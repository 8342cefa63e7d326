"""
Service container - builds every engine component once and wires them
together explicitly.

Postgres persistence is used when DATABASE_URL is set, in-memory stores
otherwise. The Redis classification cache and the OpenAI summarizer are
optional and only built when configured.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from inbox_triage.config import Settings
from inbox_triage.core.errors import UpstreamUnavailable
from inbox_triage.db.pool import DatabasePoolManager
from inbox_triage.features.classifier import ClassificationEngine, LearningSystem, RulesEngine
from inbox_triage.features.followup import BusinessCalendar, FollowUpQueue, SLATracker, SnoozeEngine
from inbox_triage.features.vip import VIPManager
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.repositories import (
    InMemoryFeedbackLog,
    InMemoryFollowUpRepository,
    InMemoryHistoryLog,
    InMemoryRuleRepository,
    InMemoryVipRepository,
)
from inbox_triage.repositories.postgres import (
    PostgresFeedbackLog,
    PostgresFollowUpRepository,
    PostgresHistoryLog,
    PostgresRuleRepository,
    PostgresVipRepository,
    ensure_schema,
)
from inbox_triage.services.cache import CacheBackend, InMemoryCache, RedisCache
from inbox_triage.services.openai_summarizer import OpenAISummarizer, Summarizer

logger = get_logger(__name__)


@dataclass
class TriageContainer:
    settings: Settings
    rules_engine: RulesEngine
    vip_manager: VIPManager
    learning_system: LearningSystem
    classification_engine: ClassificationEngine
    sla_tracker: SLATracker
    snooze_engine: SnoozeEngine
    queue: FollowUpQueue
    cache: CacheBackend
    db_pool: DatabasePoolManager | None = None
    summarizer: Summarizer | None = None
    started: list[str] = field(default_factory=list)

    async def startup(self) -> None:
        """Open pools, create tables and replay the feedback log."""
        logger.info("Triage engine starting", environment=self.settings.environment)

        try:
            if self.db_pool is not None:
                await self.db_pool.initialize()
                self.started.append("database_pool")
                await ensure_schema(self.db_pool)

            if isinstance(self.cache, RedisCache):
                await self.cache.initialize()
                self.started.append("redis")

            replayed = await self.learning_system.rebuild_from_log()
            logger.info("Triage engine started", services=self.started, feedback_replayed=replayed)

        except Exception as e:
            logger.error("Failed to start triage engine", error=str(e), completed_tasks=self.started)
            await self.shutdown()
            raise

    async def shutdown(self) -> None:
        """Close resources in reverse start order; errors are logged, not raised."""
        shutdown_errors = []

        if "redis" in self.started and isinstance(self.cache, RedisCache):
            try:
                await self.cache.close()
            except Exception as e:
                logger.error("Error closing Redis", error=str(e))
                shutdown_errors.append(f"Redis: {e}")

        if "database_pool" in self.started and self.db_pool is not None:
            try:
                await self.db_pool.close()
            except Exception as e:
                logger.error("Error closing database pool", error=str(e))
                shutdown_errors.append(f"Database: {e}")

        self.started.clear()
        if shutdown_errors:
            logger.warning("Some services had shutdown errors", errors=shutdown_errors)
        else:
            logger.info("Triage engine stopped")


def _build_summarizer(settings: Settings) -> Summarizer | None:
    if not settings.ai_enabled():
        return None
    try:
        return OpenAISummarizer(settings)
    except UpstreamUnavailable as e:
        logger.warning("AI classification disabled", error=str(e))
        return None


def build_container(
    settings: Settings,
    clock: Callable[[], datetime] | None = None,
) -> TriageContainer:
    db_pool = DatabasePoolManager(settings) if settings.DATABASE_URL else None

    if db_pool is not None:
        rule_repository = PostgresRuleRepository(db_pool)
        vip_repository = PostgresVipRepository(db_pool)
        feedback_log = PostgresFeedbackLog(db_pool)
        followup_repository = PostgresFollowUpRepository(db_pool)
        history_log = PostgresHistoryLog(db_pool)
    else:
        rule_repository = InMemoryRuleRepository()
        vip_repository = InMemoryVipRepository()
        feedback_log = InMemoryFeedbackLog()
        followup_repository = InMemoryFollowUpRepository()
        history_log = InMemoryHistoryLog()

    cache: CacheBackend
    if settings.REDIS_URL:
        cache = RedisCache(settings.REDIS_URL, max_connections=settings.REDIS_MAX_CONNECTIONS)
    else:
        cache = InMemoryCache()

    calendar = BusinessCalendar.from_settings(settings)
    rules_engine = RulesEngine(rule_repository, settings, clock)
    vip_manager = VIPManager(vip_repository, settings, clock)
    learning_system = LearningSystem(feedback_log, settings, clock)
    summarizer = _build_summarizer(settings)
    sla_tracker = SLATracker(settings, clock, calendar)

    container = TriageContainer(
        settings=settings,
        rules_engine=rules_engine,
        vip_manager=vip_manager,
        learning_system=learning_system,
        classification_engine=ClassificationEngine(
            rules_engine,
            vip_manager,
            learning_system,
            settings,
            summarizer=summarizer,
            cache=cache,
            clock=clock,
        ),
        sla_tracker=sla_tracker,
        snooze_engine=SnoozeEngine(settings, clock, calendar),
        queue=FollowUpQueue(followup_repository, history_log, sla_tracker, settings, clock),
        cache=cache,
        db_pool=db_pool,
        summarizer=summarizer,
    )
    logger.info(
        "Triage container built",
        persistence="postgres" if db_pool else "memory",
        cache="redis" if settings.REDIS_URL else "memory",
        ai_enabled=summarizer is not None,
    )
    return container
