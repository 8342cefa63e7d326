from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from inbox_triage.core.errors import UpstreamUnavailable
from inbox_triage.features.classifier import ClassificationEngine
from inbox_triage.features.vip import VIPManager
from inbox_triage.models.domain.actions import ArchiveAction, MarkImportantAction, StarAction
from inbox_triage.models.domain.classification import ClassificationFeedback, SummarizerHint
from inbox_triage.models.domain.email import EmailContext
from inbox_triage.models.domain.enums import ClassificationMethod, FeedbackType, Priority
from inbox_triage.models.domain.vip import VIPContact

RECEIVED = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


def make_email(subject="Lunch plans", sender="sam@example.org", body="See you there.", email_id="msg-1"):
    return EmailContext(
        id=email_id,
        thread_id=f"thread-{email_id}",
        subject=subject,
        sender=sender,
        to=("me@example.org",),
        date=RECEIVED,
        body=body,
    )


@pytest.mark.asyncio
async def test_vip_tier1_sender_is_critical(classification_engine, vip_manager):
    await vip_manager.add_vip(VIPContact(pattern="ceo@acme.com", tier=1))

    result = await classification_engine.classify_email(
        make_email(subject="Quick question", sender="Dana <ceo@acme.com>", body="Can we talk?")
    )

    assert result.priority == Priority.CRITICAL
    assert result.is_vip is True
    assert result.vip_tier == 1
    assert "PA-VIP" in result.labels
    assert "PA-Unclassified" not in result.labels
    assert result.feedback_required is True
    assert result.needs_reply is True
    assert MarkImportantAction() in result.suggested_actions
    assert StarAction() in result.suggested_actions
    assert "VIP tier 1" in result.reasoning


@pytest.mark.asyncio
async def test_urgent_rule_sets_high_priority(classification_engine, rules_engine):
    await rules_engine.seed_default_rules()

    result = await classification_engine.classify_email(
        make_email(subject="URGENT: server down", sender="ops@example.org", body="")
    )

    assert result.priority == Priority.HIGH
    assert result.method == ClassificationMethod.RULE
    assert result.applied_rules[0] == "default-urgent"
    assert "PA-Priority" in result.labels
    assert "Rule 'Urgent subject' matched" in result.reasoning


@pytest.mark.asyncio
async def test_newsletter_rule_suggests_archive(classification_engine, rules_engine):
    await rules_engine.seed_default_rules()

    result = await classification_engine.classify_email(
        make_email(
            subject="Your weekly digest",
            sender="newsletter@news.example.com",
            body="Top stories this week. Click to unsubscribe.",
        )
    )

    assert result.priority == Priority.LOW
    assert result.category == "newsletter"
    assert result.is_newsletter is True
    assert result.needs_reply is False
    assert ArchiveAction() in result.suggested_actions


@pytest.mark.asyncio
async def test_no_signals_is_unclassified(classification_engine):
    result = await classification_engine.classify_email(make_email())

    assert result.priority == Priority.MEDIUM
    assert result.category == "other"
    assert "PA-Unclassified" in result.labels
    assert result.confidence < 0.6
    assert result.feedback_required is True
    assert result.applied_rules == ()


@pytest.mark.asyncio
async def test_summarizer_failure_does_not_block_classification(
    rules_engine, vip_manager, learning_system, settings, clock
):
    summarizer = AsyncMock()
    summarizer.summarize.side_effect = UpstreamUnavailable("timeout", service="openai")
    engine = ClassificationEngine(
        rules_engine, vip_manager, learning_system, settings, summarizer=summarizer, clock=clock
    )

    result = await engine.classify_email(make_email())

    assert result.priority == Priority.MEDIUM
    assert "AI summarizer unavailable" in result.reasoning
    summarizer.summarize.assert_awaited_once()


@pytest.mark.asyncio
async def test_ai_hint_alone_sets_method_ai(rules_engine, vip_manager, learning_system, settings, clock):
    summarizer = AsyncMock()
    summarizer.summarize.return_value = SummarizerHint(
        category="finance", priority=Priority.HIGH, confidence=0.9, reasoning="payment request"
    )
    engine = ClassificationEngine(
        rules_engine, vip_manager, learning_system, settings, summarizer=summarizer, clock=clock
    )

    result = await engine.classify_email(make_email(sender="manager@example.org"))

    assert result.method == ClassificationMethod.AI
    assert result.category == "finance"
    assert result.priority == Priority.HIGH
    assert result.confidence == pytest.approx(0.66)
    assert "payment request" in result.reasoning


@pytest.mark.asyncio
async def test_learned_category_is_hybrid(classification_engine):
    result = await classification_engine.classify_email(
        make_email(subject="Invoice payment due", sender="billing@bank.com", body="")
    )

    assert result.method == ClassificationMethod.HYBRID
    assert result.category == "finance"
    assert "Learned category 'finance'" in result.reasoning


@pytest.mark.asyncio
async def test_cached_result_is_reused_until_feedback(classification_engine, vip_manager, fake_redis):
    email = make_email(sender="ceo@acme.com")
    first = await classification_engine.classify_email(email)
    assert "classification:msg-1" in fake_redis.store

    await vip_manager.add_vip(VIPContact(pattern="ceo@acme.com", tier=1))
    cached = await classification_engine.classify_email(email)
    fresh = await classification_engine.classify_email(email, use_cache=False)

    assert cached.is_vip is False
    assert cached.priority == first.priority
    assert cached.reasoning == first.reasoning
    assert fresh.is_vip is True

    await classification_engine.record_feedback(
        "msg-1", ClassificationFeedback(email_id="msg-1", feedback_type=FeedbackType.CORRECT)
    )

    assert "classification:msg-1" not in fake_redis.store


@pytest.mark.asyncio
async def test_vip_store_unavailable_is_reported(rules_engine, learning_system, settings, clock):
    repository = AsyncMock()
    repository.list.side_effect = UpstreamUnavailable("db down")
    engine = ClassificationEngine(
        rules_engine, VIPManager(repository, settings, clock), learning_system, settings, clock=clock
    )

    result = await engine.classify_email(make_email(sender="ceo@acme.com"))

    assert result.is_vip is False
    assert "VIP list unavailable" in result.reasoning


@pytest.mark.asyncio
async def test_confidence_stays_in_unit_interval(classification_engine, rules_engine, vip_manager):
    await rules_engine.seed_default_rules()
    await vip_manager.add_vip(VIPContact(pattern="*@acme.com", tier=2))

    emails = [
        make_email(email_id="1", subject="URGENT invoice meeting", sender="cfo@acme.com"),
        make_email(email_id="2", subject="hello", sender="noreply@shop.com", body="unsubscribe"),
        make_email(email_id="3", subject="", sender="", body=""),
    ]
    results = await classification_engine.classify_emails(emails)

    assert len(results) == 3
    for result in results:
        assert 0.0 <= result.confidence <= 1.0
        assert 0.0 <= result.importance <= 100.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("sender", "body", "rule_id"),
    [
        ("noreply@acme.com", "Your weekly digest.", "default-noreply"),
        ("newsletter@acme.com", "Click here to unsubscribe.", "default-newsletter"),
    ],
)
async def test_vip_floor_overrides_low_priority_rule(
    classification_engine, rules_engine, vip_manager, sender, body, rule_id
):
    await rules_engine.seed_default_rules()
    await vip_manager.add_vip(VIPContact(pattern="*@acme.com", tier=2))

    result = await classification_engine.classify_email(
        make_email(subject="Weekly digest", sender=sender, body=body)
    )

    assert rule_id in result.applied_rules
    assert result.priority == Priority.HIGH
    assert result.is_vip is True
    assert "VIP floor" in result.reasoning
