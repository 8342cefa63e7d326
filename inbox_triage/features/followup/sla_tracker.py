"""
SLA tracker - response deadlines and live status for queue items.

Deadlines are computed in working time (see BusinessCalendar). A VIP
`sla_hours` override replaces the per-priority allowance entirely; the queue
keeps it on the item as `sla_allowance_hours` so every later status check
uses the same allowance. The sweep methods take the queue explicitly and
write only through it.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from inbox_triage.config import Settings
from inbox_triage.features.followup.business_calendar import BusinessCalendar
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.enums import Priority, SLAStatus
from inbox_triage.models.domain.queue import FollowUpItem, TimeRemaining
from inbox_triage.models.domain.vip import VIPContact

if TYPE_CHECKING:
    from inbox_triage.features.followup.queue_manager import FollowUpQueue

logger = get_logger(__name__)


class SLATracker:
    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
        calendar: BusinessCalendar | None = None,
    ):
        self.calendar = calendar or BusinessCalendar.from_settings(settings)
        self.sla_hours = settings.sla_hours()
        self.at_risk_ratio = settings.SLA_AT_RISK_RATIO
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    def allowance_hours(self, priority: Priority, vip: VIPContact | None = None) -> float:
        if vip is not None and vip.sla_hours:
            return vip.sla_hours
        return self.sla_hours[priority]

    def item_allowance_hours(self, item: FollowUpItem) -> float:
        return item.sla_allowance_hours or self.sla_hours[item.priority]

    def calculate_deadline(self, item: FollowUpItem, vip: VIPContact | None = None) -> datetime:
        start = item.received_date or self.now()
        if vip is not None and vip.sla_hours:
            hours = vip.sla_hours
        else:
            hours = self.item_allowance_hours(item)
        return self.calendar.add_business_hours(start, hours)

    def get_sla_status(
        self,
        deadline: datetime,
        priority: Priority,
        now: datetime | None = None,
        allowance_hours: float | None = None,
    ) -> SLAStatus:
        now = now or self.now()
        if now > deadline:
            return SLAStatus.OVERDUE

        total_hours = allowance_hours if allowance_hours is not None else self.sla_hours[priority]
        remaining_hours = (deadline - now).total_seconds() / 3600
        if remaining_hours < total_hours * self.at_risk_ratio:
            return SLAStatus.AT_RISK
        return SLAStatus.ON_TIME

    def status_for(self, item: FollowUpItem, now: datetime | None = None) -> SLAStatus:
        """Status of an item measured against its own allowance."""
        return self.get_sla_status(
            item.sla_deadline, item.priority, now, allowance_hours=self.item_allowance_hours(item)
        )

    def get_time_remaining(self, deadline: datetime, now: datetime | None = None) -> TimeRemaining:
        now = now or self.now()
        seconds = (deadline - now).total_seconds()
        overdue = seconds < 0
        minutes_total = int(abs(seconds) // 60)
        return TimeRemaining(hours=minutes_total // 60, minutes=minutes_total % 60, is_overdue=overdue)

    # -----------------------------------------------------------------
    # Sweeps
    # -----------------------------------------------------------------

    async def check_and_alert_overdue(
        self, queue: FollowUpQueue, now: datetime | None = None
    ) -> list[FollowUpItem]:
        """
        Return active items that crossed into OVERDUE since they were last
        reported. Each reported item is stamped with `sla_alerted_at`, so
        a second run at the same instant reports nothing.
        """
        now = now or self.now()
        newly_overdue: list[FollowUpItem] = []

        for item in await queue.list_active_items():
            if item.sla_deadline is None:
                continue

            status = self.status_for(item, now)
            alerted_at = item.sla_alerted_at
            first_alert = status == SLAStatus.OVERDUE and alerted_at is None

            if first_alert:
                alerted_at = now
            elif status != SLAStatus.OVERDUE:
                alerted_at = None

            if status == item.sla_status and alerted_at == item.sla_alerted_at:
                continue

            updated = await queue.apply_sla_status(item.id, status, alerted_at)
            if first_alert:
                newly_overdue.append(updated)
                logger.warning(
                    "Follow-up item overdue",
                    item_id=item.id,
                    priority=item.priority.value,
                    deadline=item.sla_deadline.isoformat(),
                )

        return newly_overdue

    async def update_all_sla_statuses(self, queue: FollowUpQueue, now: datetime | None = None) -> int:
        """Recompute and persist SLA status for active items; returns how many changed."""
        now = now or self.now()
        changed = 0
        for item in await queue.list_active_items():
            if item.sla_deadline is None:
                continue
            status = self.status_for(item, now)
            if status != item.sla_status:
                alerted_at = item.sla_alerted_at if status == SLAStatus.OVERDUE else None
                await queue.apply_sla_status(item.id, status, alerted_at)
                changed += 1
        return changed

    async def escalate_at_risk(self, queue: FollowUpQueue, now: datetime | None = None) -> list[str]:
        """Bump AT_RISK items one priority level; deadlines are left unchanged."""
        now = now or self.now()
        escalated: list[str] = []
        for item in await queue.list_active_items():
            if item.sla_deadline is None or item.priority == Priority.CRITICAL:
                continue
            if self.status_for(item, now) != SLAStatus.AT_RISK:
                continue
            await queue.escalate_item(item.id, item.priority.escalated(), reason="SLA at risk")
            escalated.append(item.id)

        if escalated:
            logger.info("At-risk items escalated", count=len(escalated))
        return escalated
