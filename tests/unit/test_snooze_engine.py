from datetime import UTC, date, datetime, timedelta

import pytest

from inbox_triage.features.followup.snooze_engine import MAX_OFFSET_SAMPLES, find_deadline
from inbox_triage.models.domain.enums import Priority
from inbox_triage.models.domain.queue import SnoozeRequest

MONDAY = date(2025, 1, 6)


def at(day, hour, minute=0):
    return datetime(2025, 1, day, hour, minute, tzinfo=UTC)


def test_quick_options_on_monday(snooze_engine):
    options = snooze_engine.get_quick_snooze_options()

    assert [(o.label, o.time) for o in options] == [
        ("In 1 hour", at(6, 11)),
        ("Later today", at(6, 13)),
        ("Tomorrow morning", at(7, 9)),
        ("End of week", at(10, 9)),
        ("Next week", at(13, 9)),
    ]


def test_quick_options_on_friday_skip_end_of_week(snooze_engine):
    options = snooze_engine.get_quick_snooze_options(now=at(10, 15))

    assert [o.label for o in options] == ["In 1 hour", "Later today", "Tomorrow morning", "Next week"]
    assert options[2].time == at(13, 9)
    assert options[3].time == at(17, 9)


def test_explicit_iso_date(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(
        SnoozeRequest(subject="Report", body="Final numbers due 2025-01-09")
    )

    assert suggestion.suggested_time == at(8, 9)
    assert suggestion.confidence == 0.8
    assert "2025-01-09" in suggestion.reasoning


def test_month_name_date(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(SnoozeRequest(body="Please review by January 15th."))

    assert suggestion.suggested_time == at(14, 9)
    assert suggestion.confidence == 0.8


def test_tomorrow_resurfaces_that_morning(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(SnoozeRequest(subject="Can you send it tomorrow?"))

    assert suggestion.suggested_time == at(7, 9)
    assert suggestion.confidence == 0.7


def test_same_day_deadline_checks_back_in_two_hours(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(SnoozeRequest(body="Need this by EOD"))

    assert suggestion.suggested_time == at(6, 12)
    assert suggestion.confidence == 0.7


def test_end_of_week_phrase(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(SnoozeRequest(body="Any time before the end of the week"))

    assert suggestion.suggested_time == at(9, 9)


@pytest.mark.parametrize(
    ("priority", "expected"),
    [
        (Priority.CRITICAL, at(6, 12)),
        (Priority.HIGH, at(6, 14)),
        (Priority.MEDIUM, at(7, 10)),
        (Priority.LOW, at(9, 10)),
    ],
)
def test_priority_default_without_deadline(snooze_engine, priority, expected):
    suggestion = snooze_engine.suggest_snooze_time(
        SnoozeRequest(subject="Quarterly numbers", priority=priority)
    )

    assert suggestion.suggested_time == expected
    assert suggestion.confidence == 0.5


def test_default_is_aligned_to_working_hours(snooze_engine):
    suggestion = snooze_engine.suggest_snooze_time(
        SnoozeRequest(subject="Quarterly numbers", priority=Priority.HIGH), now=at(6, 16)
    )

    assert suggestion.suggested_time == at(7, 9)


@pytest.mark.parametrize(
    ("now", "body"),
    [
        (at(6, 10), ""),
        (at(6, 10), "due tomorrow"),
        (at(10, 16, 30), "due tomorrow"),
        (at(11, 12), "by 2025-01-13"),
        (at(8, 8), "today please"),
    ],
)
def test_alternatives_are_future_distinct_and_bounded(snooze_engine, now, body):
    suggestion = snooze_engine.suggest_snooze_time(SnoozeRequest(body=body), now=now)
    times = [a.time for a in suggestion.alternatives]

    assert suggestion.suggested_time > now
    assert 2 <= len(times) <= 3
    assert all(t > now for t in times)
    assert suggestion.suggested_time not in times
    assert len(set(times)) == len(times)


def test_snooze_bias(snooze_engine):
    suggested = at(7, 9)

    assert snooze_engine.get_snooze_bias_hours() is None

    snooze_engine.learn_from_user_snooze("item-1", suggested + timedelta(hours=1), suggested)
    snooze_engine.learn_from_user_snooze("item-2", suggested, suggested)

    assert snooze_engine.get_snooze_bias_hours() == 0.5


def test_snooze_bias_uses_recent_choices(snooze_engine):
    suggested = at(7, 9)
    for i in range(MAX_OFFSET_SAMPLES):
        snooze_engine.learn_from_user_snooze(f"old-{i}", suggested + timedelta(hours=5), suggested)
    for i in range(MAX_OFFSET_SAMPLES):
        snooze_engine.learn_from_user_snooze(f"new-{i}", suggested + timedelta(hours=1), suggested)

    assert len(snooze_engine._offsets) == MAX_OFFSET_SAMPLES
    assert snooze_engine.get_snooze_bias_hours() == 1.0


def test_find_deadline_rules():
    assert find_deadline("nothing here", MONDAY) is None
    assert find_deadline("was due 2024-12-01", MONDAY) is None
    assert find_deadline("see you Jan 2", MONDAY)[0] == date(2026, 1, 2)
    assert find_deadline("tomorrow (2025-01-07)", MONDAY) == (date(2025, 1, 7), True, "2025-01-07")
    assert find_deadline("in 3 days or next week", MONDAY)[0] == date(2025, 1, 9)
    assert find_deadline("next monday", MONDAY)[0] == date(2025, 1, 13)
