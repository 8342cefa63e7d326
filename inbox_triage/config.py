from datetime import UTC, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from inbox_triage.models.domain.enums import Priority, TieBreak

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # =================================================================
    # CALENDAR - working hours and timezone used by SLA/snooze maths
    # =================================================================
    TIMEZONE: str = "UTC"
    WORKING_HOURS_ENABLED: bool = True
    WORKING_HOURS_START: int = 9
    WORKING_HOURS_END: int = 17
    ADJUST_FOR_WEEKENDS: bool = True

    # =================================================================
    # SLA SETTINGS - base allowance per priority, in hours
    # =================================================================
    SLA_CRITICAL_HOURS: float = 4
    SLA_HIGH_HOURS: float = 24
    SLA_MEDIUM_HOURS: float = 72
    SLA_LOW_HOURS: float = 168
    SLA_AT_RISK_RATIO: float = 0.2

    # =================================================================
    # VIP SETTINGS
    # =================================================================
    VIP_TIER1_MIN_PRIORITY: Priority = Priority.CRITICAL
    VIP_TIER2_MIN_PRIORITY: Priority = Priority.HIGH
    VIP_TIER3_MIN_PRIORITY: Priority = Priority.MEDIUM
    VIP_TIER1_SLA_HOURS: float = 4
    VIP_TIER2_SLA_HOURS: float = 24
    VIP_TIER3_SLA_HOURS: float = 48
    VIP_RELOAD_SECONDS: int = 600

    # =================================================================
    # CLASSIFICATION SETTINGS
    # =================================================================
    RULE_CONFIDENCE_THRESHOLD: float = 0.6
    RULE_TIE_BREAK: TieBreak = TieBreak.EARLIER_CREATED
    RULES_RELOAD_SECONDS: int = 300
    FEEDBACK_CONFIDENCE_THRESHOLD: float = 0.85
    CLASSIFICATION_CACHE_TTL_SECONDS: int = 3600

    LEARNING_ENABLED: bool = True
    LEARNING_MIN_SIMILARITY: float = 0.3
    LEARNING_RATE: float = 0.1

    # OpenAI summarizer (optional)
    AI_CLASSIFICATION_ENABLED: bool = False
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 20.0
    OPENAI_MAX_TOKENS: int = 400
    OPENAI_TEMPERATURE: float = 0.2
    AI_WEIGHT: float = 0.6
    RULES_WEIGHT: float = 0.4

    # =================================================================
    # PERSISTENCE - Postgres when DATABASE_URL is set, memory otherwise
    # =================================================================
    DATABASE_URL: str | None = None
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # Redis classification cache (optional)
    REDIS_URL: str | None = None
    REDIS_MAX_CONNECTIONS: int = 20

    # Background sweeps
    SNOOZE_CHECK_INTERVAL_MINUTES: int = 5
    SLA_CHECK_INTERVAL_MINUTES: int = 15
    SLA_ESCALATE_AT_RISK: bool = True

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_working_hours(self) -> "Settings":
        if not 0 <= self.WORKING_HOURS_START < self.WORKING_HOURS_END <= 24:
            raise ValueError(
                "WORKING_HOURS_START must be before WORKING_HOURS_END, both within 0..24"
            )
        if not 0 < self.SLA_AT_RISK_RATIO < 1:
            raise ValueError("SLA_AT_RISK_RATIO must be between 0 and 1")
        return self

    def tzinfo(self) -> tzinfo:
        if self.TIMEZONE.upper() == "UTC":
            return UTC
        return ZoneInfo(self.TIMEZONE)

    def working_hours(self) -> tuple[int, int] | None:
        """Working window as (start_hour, end_hour), or None when disabled."""
        if not self.WORKING_HOURS_ENABLED:
            return None
        return self.WORKING_HOURS_START, self.WORKING_HOURS_END

    def sla_hours(self) -> dict[Priority, float]:
        return {
            Priority.CRITICAL: self.SLA_CRITICAL_HOURS,
            Priority.HIGH: self.SLA_HIGH_HOURS,
            Priority.MEDIUM: self.SLA_MEDIUM_HOURS,
            Priority.LOW: self.SLA_LOW_HOURS,
        }

    def vip_priority_floor(self, tier: int) -> Priority:
        floors = {
            1: self.VIP_TIER1_MIN_PRIORITY,
            2: self.VIP_TIER2_MIN_PRIORITY,
            3: self.VIP_TIER3_MIN_PRIORITY,
        }
        return floors.get(tier, Priority.MEDIUM)

    def vip_default_sla_hours(self, tier: int) -> float:
        defaults = {
            1: self.VIP_TIER1_SLA_HOURS,
            2: self.VIP_TIER2_SLA_HOURS,
            3: self.VIP_TIER3_SLA_HOURS,
        }
        return defaults.get(tier, self.VIP_TIER3_SLA_HOURS)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Development runs with a smaller pool.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": min(self.DB_POOL_MAX_SIZE, 5)})

        return config

    def ai_enabled(self) -> bool:
        return self.AI_CLASSIFICATION_ENABLED and bool(self.OPENAI_API_KEY)


settings = Settings()
