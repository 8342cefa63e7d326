from datetime import UTC

import pytest
from pydantic import ValidationError

from inbox_triage.config import Settings
from inbox_triage.models.domain.enums import Priority


def test_defaults(settings):
    assert settings.tzinfo() is UTC
    assert settings.working_hours() == (9, 17)
    assert settings.sla_hours()[Priority.CRITICAL] == 4
    assert settings.vip_priority_floor(2) == Priority.HIGH
    assert settings.ai_enabled() is False


def test_ai_requires_key():
    settings = Settings(_env_file=None, AI_CLASSIFICATION_ENABLED=True, OPENAI_API_KEY=None)

    assert settings.ai_enabled() is False
    assert Settings(_env_file=None, AI_CLASSIFICATION_ENABLED=True, OPENAI_API_KEY="sk-test").ai_enabled()


def test_rejects_inverted_working_hours():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, WORKING_HOURS_START=18, WORKING_HOURS_END=9)


def test_rejects_bad_at_risk_ratio():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SLA_AT_RISK_RATIO=1.5)


def test_development_pool_is_smaller():
    settings = Settings(_env_file=None, environment="development", DB_POOL_MAX_SIZE=20)

    assert settings.get_db_pool_config()["max_size"] == 5
    assert Settings(_env_file=None, environment="production").get_db_pool_config()["max_size"] == 10
