from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from inbox_triage.core.errors import NotFoundError, UpstreamUnavailable, ValidationError
from inbox_triage.features.classifier import RulesEngine
from inbox_triage.models.domain.email import EmailContext, ThreadMetadata
from inbox_triage.models.domain.enums import TieBreak
from inbox_triage.repositories import InMemoryRuleRepository

RECEIVED = datetime(2025, 1, 6, 9, 30, tzinfo=UTC)


def make_email(subject="Hello", sender="alice@example.com", to=("me@example.com",), body="", thread=None):
    return EmailContext(
        id="msg-1",
        thread_id="thread-1",
        subject=subject,
        sender=sender,
        to=to,
        date=RECEIVED,
        body=body,
        thread=thread,
    )


def rule_record(rule_id, precedence, conditions, confidence=0.8, created_at="2024-01-01T00:00:00+00:00", **extra):
    return {
        "id": rule_id,
        "name": f"Rule {rule_id}",
        "precedence": precedence,
        "conditions": conditions,
        "actions": [{"type": "label", "value": f"PA-{rule_id}"}],
        "confidence": confidence,
        "created_at": created_at,
        **extra,
    }


def subject_contains(value, case_sensitive=False):
    return {"field": "subject", "operator": "contains", "value": value, "case_sensitive": case_sensitive}


@pytest.mark.asyncio
async def test_matches_are_ordered_by_precedence(settings):
    repository = InMemoryRuleRepository(
        [
            rule_record("b", 90, [{"field": "from", "operator": "endsWith", "value": "@acme.com"}]),
            rule_record("a", 100, [subject_contains("urgent")]),
        ]
    )
    engine = RulesEngine(repository, settings)

    matches = await engine.evaluate_rules(make_email(subject="URGENT: outage", sender="bob@acme.com"))

    assert [m.rule.id for m in matches] == ["a", "b"]
    assert matches[0].confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_equal_precedence_prefers_higher_confidence(settings):
    repository = InMemoryRuleRepository(
        [
            rule_record("low", 50, [subject_contains("report")], confidence=0.6),
            rule_record("high", 50, [subject_contains("report")], confidence=0.7),
        ]
    )
    engine = RulesEngine(repository, settings)

    matches = await engine.evaluate_rules(make_email(subject="Weekly report"))

    assert [m.rule.id for m in matches] == ["high", "low"]


@pytest.mark.asyncio
async def test_tie_break_uses_creation_order(settings):
    records = [
        rule_record("newer", 50, [subject_contains("report")], created_at="2024-06-01T00:00:00+00:00"),
        rule_record("older", 50, [subject_contains("report")], created_at="2024-01-01T00:00:00+00:00"),
    ]
    email = make_email(subject="Weekly report")

    default_engine = RulesEngine(InMemoryRuleRepository(records), settings)
    later_engine = RulesEngine(
        InMemoryRuleRepository(records),
        settings.model_copy(update={"RULE_TIE_BREAK": TieBreak.LATER_CREATED}),
    )

    assert [m.rule.id for m in await default_engine.evaluate_rules(email)] == ["older", "newer"]
    assert [m.rule.id for m in await later_engine.evaluate_rules(email)] == ["newer", "older"]


@pytest.mark.asyncio
async def test_malformed_records_are_skipped(settings):
    repository = InMemoryRuleRepository(
        [
            rule_record("no-conditions", 100, []),
            rule_record("bad-operator", 100, [{"field": "subject", "operator": "regex", "value": ".*"}]),
            {"id": "no-name", "precedence": 100, "conditions": [subject_contains("x")]},
            rule_record("valid", 10, [subject_contains("invoice")]),
        ]
    )
    engine = RulesEngine(repository, settings)

    matches = await engine.evaluate_rules(make_email(subject="Invoice attached"))

    assert [m.rule.id for m in matches] == ["valid"]


@pytest.mark.asyncio
async def test_missing_field_never_matches(settings):
    repository = InMemoryRuleRepository(
        [rule_record("to-me", 50, [{"field": "to", "operator": "contains", "value": "me@"}])]
    )
    engine = RulesEngine(repository, settings)

    assert await engine.evaluate_rules(make_email(to=())) == []
    assert len(await engine.evaluate_rules(make_email(to=("other@x.com", "me@example.com")))) == 1


@pytest.mark.asyncio
async def test_all_conditions_must_match(settings):
    repository = InMemoryRuleRepository(
        [
            rule_record(
                "both",
                50,
                [subject_contains("invoice"), {"field": "from", "operator": "startsWith", "value": "billing"}],
            )
        ]
    )
    engine = RulesEngine(repository, settings)

    assert await engine.evaluate_rules(make_email(subject="Invoice", sender="alice@example.com")) == []
    assert len(await engine.evaluate_rules(make_email(subject="Invoice", sender="billing@example.com"))) == 1


@pytest.mark.asyncio
async def test_case_sensitive_condition(settings):
    repository = InMemoryRuleRepository([rule_record("exact", 50, [subject_contains("URGENT", case_sensitive=True)])])
    engine = RulesEngine(repository, settings)

    assert await engine.evaluate_rules(make_email(subject="urgent please")) == []
    assert len(await engine.evaluate_rules(make_email(subject="URGENT please"))) == 1


@pytest.mark.asyncio
async def test_disabled_rule_is_ignored(settings):
    repository = InMemoryRuleRepository([rule_record("off", 50, [subject_contains("hello")], enabled=False)])
    engine = RulesEngine(repository, settings)

    assert await engine.evaluate_rules(make_email(subject="hello")) == []


@pytest.mark.asyncio
async def test_match_confidence_bonuses_are_capped(settings):
    repository = InMemoryRuleRepository(
        [
            rule_record(
                "strong",
                50,
                [subject_contains("invoice"), {"field": "body", "operator": "contains", "value": "due"}],
                confidence=0.9,
            )
        ]
    )
    engine = RulesEngine(repository, settings)

    matches = await engine.evaluate_rules(
        make_email(subject="Invoice", body="Payment due Friday", thread=ThreadMetadata(message_count=3))
    )

    assert matches[0].confidence == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_rule_store_unavailable_falls_back_to_defaults(settings):
    repository = AsyncMock()
    repository.list_records.side_effect = UpstreamUnavailable("db down", service="postgres")
    engine = RulesEngine(repository, settings)

    rules = await engine.load_rules()
    matches = await engine.evaluate_rules(make_email(subject="urgent: server down"))

    assert len(rules) == 6
    assert matches[0].rule.id == "default-urgent"


@pytest.mark.asyncio
async def test_rule_store_unavailable_keeps_cached_rules(settings):
    repository = AsyncMock()
    repository.list_records.return_value = [rule_record("only", 50, [subject_contains("x")])]
    engine = RulesEngine(repository, settings)
    await engine.load_rules()

    repository.list_records.side_effect = UpstreamUnavailable("db down")
    rules = await engine.load_rules(force=True)

    assert [r.id for r in rules] == ["only"]


@pytest.mark.asyncio
async def test_create_rule_validates_input(rules_engine):
    with pytest.raises(ValidationError):
        await rules_engine.create_rule(rule_record("bad", 50, [subject_contains("x")], confidence=1.5))

    with pytest.raises(ValidationError):
        await rules_engine.create_rule(rule_record("empty", 50, []))

    await rules_engine.create_rule(rule_record("dup", 50, [subject_contains("x")]))
    with pytest.raises(ValidationError):
        await rules_engine.create_rule(rule_record("dup", 50, [subject_contains("x")]))


@pytest.mark.asyncio
async def test_created_rule_is_visible_to_evaluation(rules_engine):
    assert await rules_engine.evaluate_rules(make_email(subject="quarterly plan")) == []

    rule = await rules_engine.create_rule(
        {
            "name": "Planning",
            "precedence": 40,
            "conditions": [subject_contains("plan")],
            "actions": [{"type": "label", "value": "PA-Work"}],
        }
    )
    matches = await rules_engine.evaluate_rules(make_email(subject="quarterly plan"))

    assert rule.id
    assert [m.rule.id for m in matches] == [rule.id]


@pytest.mark.asyncio
async def test_update_and_delete_unknown_rule(rules_engine):
    with pytest.raises(NotFoundError):
        await rules_engine.update_rule("missing", {"precedence": 10})

    with pytest.raises(NotFoundError):
        await rules_engine.delete_rule("missing")


@pytest.mark.asyncio
async def test_update_rule_keeps_created_at(rules_engine):
    created = await rules_engine.create_rule(rule_record("r1", 50, [subject_contains("x")]))

    updated = await rules_engine.update_rule("r1", {"precedence": 75, "created_at": "2030-01-01T00:00:00+00:00"})

    assert updated.precedence == 75
    assert updated.created_at == created.created_at


@pytest.mark.asyncio
async def test_seed_defaults_and_statistics(rules_engine):
    assert await rules_engine.seed_default_rules() == 6
    assert await rules_engine.seed_default_rules() == 0

    stats = await rules_engine.get_rule_statistics()

    assert stats["total_rules"] == 6
    assert stats["enabled_rules"] == 6
    assert stats["average_confidence"] == pytest.approx(0.825)
    assert stats["top_rules"][0]["id"] == "default-urgent"
