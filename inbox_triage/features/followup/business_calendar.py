"""
Working-hours calendar shared by SLA deadlines and snooze suggestions.

All arithmetic happens in the configured timezone. Naive datetimes are
read as local wall-clock time. Results are timezone-aware.
"""

from datetime import date, datetime, time, timedelta, tzinfo

from inbox_triage.config import Settings

SATURDAY = 5
FRIDAY = 4


class BusinessCalendar:
    def __init__(
        self,
        tz: tzinfo,
        start_hour: int = 9,
        end_hour: int = 17,
        enforce_hours: bool = True,
        skip_weekends: bool = True,
    ):
        if not 0 <= start_hour < end_hour <= 24:
            raise ValueError("start_hour must be before end_hour, both within 0..24")
        self.tz = tz
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.enforce_hours = enforce_hours
        self.skip_weekends = skip_weekends

    @classmethod
    def from_settings(cls, settings: Settings) -> "BusinessCalendar":
        return cls(
            tz=settings.tzinfo(),
            start_hour=settings.WORKING_HOURS_START,
            end_hour=settings.WORKING_HOURS_END,
            enforce_hours=settings.WORKING_HOURS_ENABLED,
            skip_weekends=settings.ADJUST_FOR_WEEKENDS,
        )

    def to_local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def is_working_day(self, day: date) -> bool:
        return not (self.skip_weekends and day.weekday() >= SATURDAY)

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time(0), tzinfo=self.tz)

    def at_start_hour(self, day: date) -> datetime:
        return self._midnight(day) + timedelta(hours=self.start_hour)

    def _window(self, day: date) -> tuple[datetime, datetime]:
        midnight = self._midnight(day)
        if not self.enforce_hours:
            return midnight, midnight + timedelta(days=1)
        return midnight + timedelta(hours=self.start_hour), midnight + timedelta(hours=self.end_hour)

    def _next_day_open(self, day: date) -> datetime:
        return self._window(day + timedelta(days=1))[0]

    def add_business_hours(self, start: datetime, hours: float) -> datetime:
        """
        Add `hours` of working time to `start`.

        Non-working days are skipped when weekend adjustment is on, and
        only time inside the working window counts when hours are
        enforced: Monday 23:00 + 4h with 9-17 hours gives Tuesday 13:00.
        """
        current = self.to_local(start)
        remaining = timedelta(hours=hours)
        if remaining <= timedelta(0):
            return current

        while True:
            if not self.is_working_day(current.date()):
                current = self._next_day_open(current.date())
                continue

            window_start, window_end = self._window(current.date())
            if current < window_start:
                current = window_start
            if current >= window_end:
                current = self._next_day_open(current.date())
                continue

            available = window_end - current
            if remaining <= available:
                return current + remaining

            remaining -= available
            current = self._next_day_open(current.date())

    def align_to_working_time(self, value: datetime) -> datetime:
        """Move `value` forward to the nearest moment inside working time."""
        current = self.to_local(value)
        while True:
            if not self.is_working_day(current.date()):
                current = self._next_day_open(current.date())
                continue
            window_start, window_end = self._window(current.date())
            if current < window_start:
                return window_start
            if current >= window_end:
                current = self._next_day_open(current.date())
                continue
            return current

    def next_working_morning(self, value: datetime) -> datetime:
        """Start of working hours on the next working day after `value`."""
        day = self.to_local(value).date() + timedelta(days=1)
        while not self.is_working_day(day):
            day += timedelta(days=1)
        return self.at_start_hour(day)

    def previous_working_morning(self, day: date, not_before: datetime) -> datetime | None:
        """Start of working hours on the last working day before `day`, if still ahead."""
        candidate = day - timedelta(days=1)
        floor = self.to_local(not_before)
        while candidate >= floor.date():
            if self.is_working_day(candidate):
                moment = self.at_start_hour(candidate)
                return moment if moment > floor else None
            candidate -= timedelta(days=1)
        return None
