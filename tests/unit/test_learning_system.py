from datetime import UTC, datetime

import pytest

from inbox_triage.core.errors import NotFoundError, ValidationError
from inbox_triage.features.classifier import LearningSystem
from inbox_triage.models.domain.classification import (
    ClassificationFeedback,
    ClassificationResult,
    PriorityFactors,
)
from inbox_triage.models.domain.email import EmailContext
from inbox_triage.models.domain.enums import ClassificationMethod, FeedbackType, Priority, Sentiment

RECEIVED = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


def make_email(email_id="msg-1", subject="Roadmap review session", sender="pm@corp.io", body=""):
    return EmailContext(
        id=email_id,
        thread_id=f"thread-{email_id}",
        subject=subject,
        sender=sender,
        to=("me@corp.io",),
        date=RECEIVED,
        body=body,
    )


def make_result(email_id="msg-1", category="work", priority=Priority.MEDIUM):
    return ClassificationResult(
        email_id=email_id,
        priority=priority,
        category=category,
        labels=(),
        needs_reply=False,
        waiting_on_others=False,
        sentiment=Sentiment.NEUTRAL,
        suggested_actions=(),
        confidence=0.7,
        method=ClassificationMethod.RULE,
        reasoning="",
    )


def feedback(email_id, feedback_type, correct_value=None, timestamp=RECEIVED):
    return ClassificationFeedback(
        email_id=email_id,
        feedback_type=feedback_type,
        correct_value=correct_value,
        timestamp=timestamp,
    )


def test_priority_score_bounds():
    assert LearningSystem.calculate_priority_score(PriorityFactors()) == 0.0
    assert LearningSystem.calculate_priority_score(
        PriorityFactors(*([1.0] * 7))
    ) == pytest.approx(100.0)
    assert LearningSystem.calculate_priority_score(
        PriorityFactors(sender_importance=5.0, keyword_urgency=-3.0)
    ) == pytest.approx(25.0)


def test_keyword_and_sender_hint_suggests_finance(learning_system):
    suggestion = learning_system.suggest_category_for_email(
        "Invoice payment due", "billing@bank.com", ""
    )

    assert suggestion.category == "finance"
    assert suggestion.source == "hint"
    assert suggestion.confidence == pytest.approx(0.34)


def test_weak_signal_returns_none(learning_system):
    assert learning_system.suggest_category_for_email("Lunch?", "friend@example.org", "") is None


def test_disabled_learning_returns_none(feedback_log, settings):
    system = LearningSystem(feedback_log, settings.model_copy(update={"LEARNING_ENABLED": False}))

    assert system.suggest_category_for_email("Invoice payment due", "billing@bank.com", "") is None


@pytest.mark.asyncio
async def test_confirmed_example_drives_suggestion(learning_system):
    learning_system.record_classification(make_email(), make_result(category="work"))
    await learning_system.record_feedback("msg-1", feedback("msg-1", FeedbackType.CORRECT))

    suggestion = learning_system.suggest_category_for_email("Roadmap review", "someone@else.io", "")

    assert suggestion.category == "work"
    assert suggestion.source == "example"
    assert suggestion.confidence == pytest.approx(2 / 3)


@pytest.mark.asyncio
async def test_unconfirmed_example_is_not_used(learning_system):
    learning_system.record_classification(make_email(), make_result(category="work"))

    assert learning_system.suggest_category_for_email("Roadmap review", "someone@else.io", "") is None


@pytest.mark.asyncio
async def test_wrong_category_relabels_example(learning_system):
    learning_system.record_classification(make_email(), make_result(category="work"))
    await learning_system.record_feedback(
        "msg-1", feedback("msg-1", FeedbackType.WRONG_CATEGORY, correct_value="travel")
    )

    example = learning_system.get_recorded_example("msg-1")

    assert example.category == "travel"
    assert example.confirmed is True


@pytest.mark.asyncio
async def test_feedback_validation(learning_system):
    with pytest.raises(ValidationError):
        await learning_system.record_feedback("msg-1", feedback("msg-2", FeedbackType.CORRECT))

    with pytest.raises(NotFoundError):
        await learning_system.record_feedback("unknown", feedback("unknown", FeedbackType.CORRECT))


@pytest.mark.asyncio
async def test_feedback_with_explicit_classification(learning_system, feedback_log):
    event = await learning_system.record_feedback(
        "msg-9",
        feedback("msg-9", FeedbackType.WRONG_PRIORITY, correct_value="HIGH"),
        classification=make_result(email_id="msg-9", category="finance", priority=Priority.LOW),
    )

    assert event.sequence == 1
    assert event.category == "finance"
    assert event.priority == Priority.LOW
    assert len(await feedback_log.list()) == 1


@pytest.mark.asyncio
async def test_statistics_fold_the_feedback_log(learning_system):
    baseline = await learning_system.get_statistics()
    assert baseline.accuracy == 75.0
    assert baseline.total_examples == 0

    learning_system.record_classification(make_email("a"), make_result("a", category="work"))
    learning_system.record_classification(make_email("b"), make_result("b", category="finance"))
    await learning_system.record_feedback("a", feedback("a", FeedbackType.CORRECT))
    await learning_system.record_feedback("b", feedback("b", FeedbackType.WRONG_PRIORITY, "HIGH"))

    stats = await learning_system.get_statistics()

    assert stats.total_examples == 2
    assert stats.accuracy == 50.0
    assert stats.categories_learned == 2
    assert stats.feedback_by_type["CORRECT"] == 1
    assert stats.feedback_by_type["WRONG_PRIORITY"] == 1
    assert stats.category_accuracy == {"work": 100.0, "finance": 0.0}
    assert stats.learning_trend == [{"date": "2025-01-06", "accuracy": 50.0, "examples": 2}]


@pytest.mark.asyncio
async def test_correction_nudges_category_weight(learning_system):
    learning_system.record_classification(make_email(), make_result(category="work"))

    await learning_system.record_feedback(
        "msg-1", feedback("msg-1", FeedbackType.WRONG_CATEGORY, correct_value="finance")
    )

    assert learning_system.category_weight("finance") == pytest.approx(0.95)
    assert learning_system.rolling_accuracy == pytest.approx(0.675)


@pytest.mark.asyncio
async def test_rebuild_from_log_replays_events(learning_system, feedback_log, settings, clock):
    learning_system.record_classification(make_email(), make_result(category="work"))
    await learning_system.record_feedback("msg-1", feedback("msg-1", FeedbackType.CORRECT))
    await learning_system.record_feedback(
        "msg-1", feedback("msg-1", FeedbackType.WRONG_CATEGORY, correct_value="finance")
    )

    restarted = LearningSystem(feedback_log, settings, clock)
    replayed = await restarted.rebuild_from_log()

    assert replayed == 2
    assert restarted.category_weight("work") == pytest.approx(learning_system.category_weight("work"))
    assert restarted.category_weight("finance") == pytest.approx(0.95)
    assert restarted.rolling_accuracy == pytest.approx(learning_system.rolling_accuracy)
