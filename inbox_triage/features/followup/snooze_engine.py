"""
Snooze advisor - quick options and a content-aware suggested resume time.

Purely advisory: nothing here writes queue state. FollowUpQueue.snooze_item
persists whatever time the user picks.
"""

import re
from collections import deque
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from inbox_triage.config import Settings
from inbox_triage.features.followup.business_calendar import FRIDAY, BusinessCalendar
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.enums import Priority
from inbox_triage.models.domain.queue import SnoozeChoice, SnoozeRequest, SnoozeSuggestion

logger = get_logger(__name__)

DEFAULT_SNOOZE_HOURS = {
    Priority.CRITICAL: 2,
    Priority.HIGH: 4,
    Priority.MEDIUM: 24,
    Priority.LOW: 72,
}
EXPLICIT_DATE_CONFIDENCE = 0.8
PHRASE_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 0.5
SAME_DAY_HOURS = 2
MAX_ALTERNATIVES = 3
MIN_ALTERNATIVES = 2
# Most recent user choices kept for the bias average
MAX_OFFSET_SAMPLES = 200

# Relative deadline phrases -> days from today
RELATIVE_TIME_PATTERNS = [
    (re.compile(r"\b(today|tonight|eod|cob|end of (the )?day|close of business)\b"), 0),
    (re.compile(r"\btomorrow\b"), 1),
    (re.compile(r"\bnext week\b"), 7),
]
END_OF_WEEK_PATTERN = re.compile(r"\b(end of (the )?week|this week|by friday)\b")
IN_N_DAYS_PATTERN = re.compile(r"\bin (\d{1,2}) days?\b")
WEEKDAY_PATTERN = re.compile(r"\b(next\s+)?(monday|tuesday|wednesday|thursday|friday)\b")
WEEKDAYS = {"monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3, "friday": 4}

ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
MONTH_NAMES = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}
MONTH_DAY_PATTERN = re.compile(
    r"\b(" + "|".join(MONTH_NAMES) + r")\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b"
)


def find_deadline(text: str, today: date) -> tuple[date, bool, str] | None:
    """
    Earliest upcoming deadline mentioned in `text`.

    Returns (date, is_explicit_date, matched_text) or None. Past explicit
    dates without a year roll over to next year; past ISO dates are ignored.
    """
    text = text.lower()
    found: list[tuple[date, bool, str]] = []

    for match in ISO_DATE_PATTERN.finditer(text):
        try:
            day = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            continue
        if day >= today:
            found.append((day, True, match.group(0)))

    for match in MONTH_DAY_PATTERN.finditer(text):
        month = MONTH_NAMES[match.group(1)]
        try:
            day = date(today.year, month, int(match.group(2)))
            if day < today:
                day = date(today.year + 1, month, int(match.group(2)))
        except ValueError:
            continue
        found.append((day, True, match.group(0)))

    for pattern, offset in RELATIVE_TIME_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append((today + timedelta(days=offset), False, match.group(0)))

    match = END_OF_WEEK_PATTERN.search(text)
    if match:
        found.append((today + timedelta(days=max(FRIDAY - today.weekday(), 0)), False, match.group(0)))

    match = IN_N_DAYS_PATTERN.search(text)
    if match:
        found.append((today + timedelta(days=int(match.group(1))), False, match.group(0)))

    for match in WEEKDAY_PATTERN.finditer(text):
        ahead = (WEEKDAYS[match.group(2)] - today.weekday()) % 7
        if ahead == 0 and match.group(1):
            ahead = 7
        found.append((today + timedelta(days=ahead), False, match.group(0)))

    if not found:
        return None
    # earliest date; explicit dates win ties
    return min(found, key=lambda f: (f[0], not f[1]))


class SnoozeEngine:
    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        calendar: BusinessCalendar | None = None,
    ):
        self.calendar = calendar or BusinessCalendar.from_settings(settings)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._offsets: deque[float] = deque(maxlen=MAX_OFFSET_SAMPLES)

    def get_quick_snooze_options(self, now: datetime | None = None) -> list[SnoozeChoice]:
        now = self.calendar.to_local(now or self._clock())
        today = now.date()

        options = [
            SnoozeChoice(now + timedelta(hours=1), "Short break", "In 1 hour"),
            SnoozeChoice(now + timedelta(hours=3), "Come back later today", "Later today"),
            SnoozeChoice(
                self.calendar.next_working_morning(now), "Start of next working day", "Tomorrow morning"
            ),
        ]

        if today.weekday() < FRIDAY:
            friday = self.calendar.at_start_hour(today + timedelta(days=FRIDAY - today.weekday()))
            if friday > now:
                options.append(SnoozeChoice(friday, "Before the weekend", "End of week"))

        next_week = self.calendar.align_to_working_time(
            self.calendar.at_start_hour(today + timedelta(days=7))
        )
        options.append(SnoozeChoice(next_week, "Revisit in a week", "Next week"))
        return options

    def suggest_snooze_time(
        self, request: SnoozeRequest, now: datetime | None = None
    ) -> SnoozeSuggestion:
        now = self.calendar.to_local(now or self._clock())
        deadline = find_deadline(f"{request.subject}\n{request.body}", now.date())

        if deadline is not None:
            deadline_day, explicit, phrase = deadline
            confidence = EXPLICIT_DATE_CONFIDENCE if explicit else PHRASE_CONFIDENCE
            if deadline_day <= now.date():
                suggested = now + timedelta(hours=SAME_DAY_HOURS)
                reasoning = f"Mentions '{phrase}': due today, check back in {SAME_DAY_HOURS} hours"
            else:
                suggested = self.calendar.previous_working_morning(deadline_day, now)
                reasoning = f"Mentions '{phrase}': resurface the working morning before it is due"
                if suggested is None:
                    suggested = self.calendar.at_start_hour(deadline_day)
                    reasoning = f"Mentions '{phrase}': resurface the morning it is due"
                    if suggested <= now:
                        suggested = now + timedelta(hours=SAME_DAY_HOURS)
        else:
            hours = DEFAULT_SNOOZE_HOURS[request.priority]
            suggested = self.calendar.align_to_working_time(now + timedelta(hours=hours))
            confidence = DEFAULT_CONFIDENCE
            reasoning = f"No deadline found; {request.priority} priority default of {hours}h"

        if suggested <= now:
            suggested = now + timedelta(hours=1)

        return SnoozeSuggestion(
            suggested_time=suggested,
            reasoning=reasoning,
            confidence=confidence,
            alternatives=self._alternatives(now, suggested),
        )

    def _alternatives(self, now: datetime, suggested: datetime) -> tuple[SnoozeChoice, ...]:
        candidates = [
            SnoozeChoice(now + timedelta(hours=3), "In 3 hours"),
            SnoozeChoice(self.calendar.next_working_morning(now), "Next working morning"),
            SnoozeChoice(
                self.calendar.align_to_working_time(
                    self.calendar.at_start_hour(now.date() + timedelta(days=7))
                ),
                "Next week",
            ),
        ]

        chosen: list[SnoozeChoice] = []
        seen = {suggested}
        for choice in sorted(candidates, key=lambda c: c.time):
            if choice.time > now and choice.time not in seen:
                seen.add(choice.time)
                chosen.append(choice)

        step = 1
        while len(chosen) < MIN_ALTERNATIVES:
            padded = suggested + timedelta(hours=24 * step)
            if padded not in seen:
                seen.add(padded)
                chosen.append(SnoozeChoice(padded, f"{24 * step} hours after the suggestion"))
            step += 1

        return tuple(chosen[:MAX_ALTERNATIVES])

    def learn_from_user_snooze(self, item_id: str, chosen: datetime, suggested: datetime) -> None:
        offset = (chosen - suggested).total_seconds() / 3600
        self._offsets.append(offset)
        logger.info(
            "Snooze choice recorded",
            item_id=item_id,
            offset_hours=round(offset, 2),
            samples=len(self._offsets),
        )

    def get_snooze_bias_hours(self) -> float | None:
        """Average hours users shift away from suggestions; None before any choice."""
        if not self._offsets:
            return None
        return round(sum(self._offsets) / len(self._offsets), 2)
