"""
Follow-up queue - the state machine over FollowUpItem records.

States:
    pending -> processing -> completed | archived
    pending <-> snoozed (resurfaced by check_snoozed_items)
    any active state -> archived

Every mutation is an independent read-modify-write of one record through
the repository. User actions (update, snooze, complete, archive) bump
`action_count`; system writes (resurfacing, SLA status, escalation) do not.
"""

import dataclasses
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from inbox_triage.config import Settings
from inbox_triage.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    TriageError,
    ValidationError,
)
from inbox_triage.features.followup.sla_tracker import SLATracker
from inbox_triage.infrastructure.audit.queue_history import QueueHistoryRecorder
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.actions import ArchiveAction
from inbox_triage.models.domain.classification import ClassificationResult
from inbox_triage.models.domain.email import EmailMeta
from inbox_triage.models.domain.enums import (
    FollowUpReason,
    HistoryAction,
    Priority,
    QueueStatus,
    SLAStatus,
)
from inbox_triage.models.domain.queue import (
    BulkFailure,
    BulkOperationResult,
    FollowUpItem,
    QueueFilter,
    QueueHistoryEntry,
    QueueStatistics,
    SnoozeOptions,
)
from inbox_triage.models.domain.vip import VIPContact
from inbox_triage.repositories.base import FollowUpRepository, HistoryLog

logger = get_logger(__name__)

ACTIVE_STATUSES = (QueueStatus.PENDING, QueueStatus.PROCESSING, QueueStatus.SNOOZED)
DEFAULT_VISIBLE_STATUSES = (QueueStatus.PENDING, QueueStatus.PROCESSING)

ALLOWED_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.PENDING: frozenset(
        {QueueStatus.PROCESSING, QueueStatus.SNOOZED, QueueStatus.COMPLETED, QueueStatus.ARCHIVED}
    ),
    QueueStatus.PROCESSING: frozenset(
        {QueueStatus.PENDING, QueueStatus.SNOOZED, QueueStatus.COMPLETED, QueueStatus.ARCHIVED}
    ),
    QueueStatus.SNOOZED: frozenset(
        {QueueStatus.PENDING, QueueStatus.SNOOZED, QueueStatus.COMPLETED, QueueStatus.ARCHIVED}
    ),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.ARCHIVED: frozenset(),
}

ITEM_FIELDS = frozenset(f.name for f in dataclasses.fields(FollowUpItem))
# Counters and identity are owned by the queue
PROTECTED_FIELDS = frozenset({"id", "action_count", "snooze_count", "added_at"})
ENUM_FIELDS = {
    "priority": Priority,
    "status": QueueStatus,
    "reason": FollowUpReason,
    "sla_status": SLAStatus,
}


DATETIME_FIELDS = frozenset(
    {
        "received_date",
        "sla_deadline",
        "sla_alerted_at",
        "snoozed_until",
        "snoozed_at",
        "last_action_date",
        "added_at",
        "updated_at",
        "completed_at",
    }
)


def _parse_datetime(name: str, value: Any) -> datetime:
    """Accept datetimes or ISO-8601 strings; tz handling is left to the caller."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as e:
            raise ValidationError(f"Invalid {name}: {value!r}", field=name) from e
    if not isinstance(value, datetime):
        raise ValidationError(f"{name} must be a datetime, got {type(value).__name__}", field=name)
    return value


def _coerce(name: str, value: Any) -> Any:
    if value is not None and name in DATETIME_FIELDS:
        return _parse_datetime(name, value)
    kind = ENUM_FIELDS.get(name)
    if kind is None or value is None or isinstance(value, kind):
        return value
    try:
        return kind(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {value!r}", field=name) from e


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _action_string(action) -> str:
    return f"{action.type}:{action.value}" if action.value is not None else action.type


# Items without a timestamp sort after those with one
_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


def _by_priority(item: FollowUpItem) -> tuple:
    return -item.priority.rank, item.sla_deadline or _FAR_FUTURE


def _by_sla_deadline(item: FollowUpItem) -> tuple:
    return item.sla_deadline or _FAR_FUTURE, -item.priority.rank


def _by_received_date(item: FollowUpItem) -> tuple:
    return item.received_date or _FAR_FUTURE, -item.priority.rank


SORT_KEYS: dict[str, Callable[[FollowUpItem], tuple]] = {
    "priority": _by_priority,
    "sla_deadline": _by_sla_deadline,
    "received_date": _by_received_date,
}


class FollowUpQueue:
    def __init__(
        self,
        repository: FollowUpRepository,
        history_log: HistoryLog,
        sla_tracker: SLATracker,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.sla_tracker = sla_tracker
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))
        self.history = QueueHistoryRecorder(history_log, self._clock)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require(self, item_id: str) -> FollowUpItem:
        item = await self.repository.get(item_id)
        if item is None:
            raise NotFoundError("FollowUpItem", item_id)
        return item

    @staticmethod
    def _enter(item: FollowUpItem, status: QueueStatus, now: datetime) -> QueueStatus:
        """Validate and apply a status change; returns the previous status."""
        previous = item.status
        if status not in ALLOWED_TRANSITIONS[previous]:
            raise InvalidTransitionError(
                f"Cannot move item {item.id} from {previous} to {status}",
                current=previous.value,
                requested=status.value,
            )

        item.status = status
        if previous == QueueStatus.SNOOZED and status != QueueStatus.SNOOZED:
            item.snoozed_until = None
        if status in (QueueStatus.COMPLETED, QueueStatus.ARCHIVED):
            item.sla_status = None
            item.sla_alerted_at = None
            if status == QueueStatus.COMPLETED:
                item.completed_at = now
        return previous

    @staticmethod
    def _touch(item: FollowUpItem, now: datetime, user_action: bool) -> None:
        item.updated_at = now
        if user_action:
            item.action_count += 1
            item.last_action_date = now

    def _localize(self, item: FollowUpItem) -> None:
        """Naive datetimes are local wall-clock time in the configured timezone."""
        for name in DATETIME_FIELDS:
            value = getattr(item, name)
            if value is None:
                continue
            value = _parse_datetime(name, value)
            if value.tzinfo is None:
                value = self.sla_tracker.calendar.to_local(value)
            setattr(item, name, value)

    def _refresh_sla(self, item: FollowUpItem, now: datetime) -> None:
        if item.sla_deadline is None or not item.status.is_active:
            return
        item.sla_status = self.sla_tracker.status_for(item, now)
        if item.sla_status != SLAStatus.OVERDUE:
            item.sla_alerted_at = None

    # =========================================================================
    # Core operations
    # =========================================================================

    async def add_item(self, item: FollowUpItem | dict[str, Any], vip: VIPContact | None = None) -> str:
        """
        Admit an item as pending and return its id.

        Counters are reset and `received_date` defaults to now. When no
        `sla_deadline` is given it is computed here. A `vip` SLA override is
        kept on the item so later status checks measure against it.
        """
        now = self._clock()

        if isinstance(item, dict):
            unknown = set(item) - ITEM_FIELDS
            if unknown:
                raise ValidationError(f"Unknown item fields: {sorted(unknown)}")
            data = {name: _coerce(name, value) for name, value in item.items()}
            for required in ("email_id", "thread_id"):
                if not data.get(required):
                    raise ValidationError(f"{required} is required", field=required)
            data["id"] = data.get("id") or str(uuid.uuid4())
            item = FollowUpItem(**data)
        else:
            if not item.email_id or not item.thread_id:
                raise ValidationError("email_id and thread_id are required", field="email_id")
            item = dataclasses.replace(item, id=item.id or str(uuid.uuid4()))

        self._localize(item)
        item.status = QueueStatus.PENDING
        item.action_count = 0
        item.snooze_count = 0
        item.received_date = item.received_date or now
        item.added_at = now
        item.updated_at = now

        if vip is not None and vip.sla_hours:
            item.sla_allowance_hours = vip.sla_hours
        if item.sla_deadline is None:
            item.sla_deadline = self.sla_tracker.calculate_deadline(item, vip)
        self._refresh_sla(item, now)

        await self.repository.upsert(item)
        await self.history.record(
            item.id,
            HistoryAction.ADDED,
            {"email_id": item.email_id, "priority": item.priority.value, "reason": item.reason.value},
        )
        return item.id

    async def update_item(self, item_id: str, patch: dict[str, Any]) -> FollowUpItem:
        now = self._clock()
        blocked = set(patch) & PROTECTED_FIELDS
        if blocked:
            raise ValidationError(f"Fields cannot be updated: {sorted(blocked)}")
        unknown = set(patch) - ITEM_FIELDS
        if unknown:
            raise ValidationError(f"Unknown item fields: {sorted(unknown)}")

        changes = {name: _coerce(name, value) for name, value in patch.items()}
        if changes.get("status") == QueueStatus.SNOOZED:
            raise ValidationError("Use snooze_item to snooze", field="status")

        item = await self._require(item_id)
        previous_priority = item.priority

        status = changes.pop("status", None)
        for name, value in changes.items():
            setattr(item, name, value)
        self._localize(item)
        if status is not None and status != item.status:
            self._enter(item, status, now)

        if changes.keys() & {"priority", "sla_deadline", "sla_allowance_hours"}:
            self._refresh_sla(item, now)
        self._touch(item, now, user_action=True)

        await self.repository.upsert(item)

        if item.priority != previous_priority:
            await self.history.record(
                item.id,
                HistoryAction.PRIORITY_CHANGED,
                {"from": previous_priority.value, "to": item.priority.value},
            )
        else:
            await self.history.record(item.id, HistoryAction.UPDATED, {"fields": sorted(patch)})
        return item

    async def get_item(self, item_id: str) -> FollowUpItem | None:
        return await self.repository.get(item_id)

    async def find_by_email_id(self, email_id: str) -> FollowUpItem | None:
        return await self.repository.find_by_email_id(email_id)

    async def list_active_items(self) -> list[FollowUpItem]:
        """Every pending, processing and snoozed item, unsorted."""
        return await self.repository.list(ACTIVE_STATUSES)

    async def get_active_items(self, queue_filter: QueueFilter | None = None) -> list[FollowUpItem]:
        """
        Filtered, sorted view of the queue.

        Defaults to pending and processing items, highest priority first
        with the nearest SLA deadline breaking ties.
        """
        queue_filter = queue_filter or QueueFilter()
        sort_key = SORT_KEYS.get(queue_filter.sort_by)
        if sort_key is None:
            raise ValidationError(f"Unknown sort field: {queue_filter.sort_by}", field="sort_by")

        items = await self.repository.list(queue_filter.statuses or DEFAULT_VISIBLE_STATUSES)
        if queue_filter.priorities:
            items = [i for i in items if i.priority in queue_filter.priorities]
        if queue_filter.reason is not None:
            items = [i for i in items if i.reason == queue_filter.reason]
        if queue_filter.sla_status is not None:
            items = [i for i in items if i.sla_status == queue_filter.sla_status]
        if queue_filter.category is not None:
            items = [i for i in items if i.category == queue_filter.category]

        items.sort(key=sort_key, reverse=queue_filter.descending)
        end = queue_filter.offset + queue_filter.limit if queue_filter.limit is not None else None
        return items[queue_filter.offset : end]

    async def snooze_item(self, item_id: str, options: SnoozeOptions) -> FollowUpItem:
        now = self._clock()
        if options.until.tzinfo is None:
            raise ValidationError("Snooze time must be timezone-aware", field="until")
        if options.until <= now:
            raise ValidationError("Snooze time must be in the future", field="until")

        item = await self._require(item_id)
        self._enter(item, QueueStatus.SNOOZED, now)
        item.snoozed_until = options.until
        item.snoozed_at = now
        item.snooze_reason = options.reason
        item.snooze_count += 1
        if options.smart and options.ai_reasoning:
            item.ai_reasoning = options.ai_reasoning
        self._touch(item, now, user_action=True)

        await self.repository.upsert(item)
        await self.history.record(
            item.id,
            HistoryAction.SNOOZED,
            {
                "until": options.until.isoformat(),
                "reason": options.reason,
                "smart": options.smart,
                "snooze_count": item.snooze_count,
            },
        )
        return item

    async def check_snoozed_items(self, now: datetime | None = None) -> list[FollowUpItem]:
        """Resurface snoozed items whose time has come; already-pending items are skipped."""
        now = now or self._clock()
        resurfaced: list[FollowUpItem] = []

        for item in await self.repository.list([QueueStatus.SNOOZED]):
            if item.snoozed_until is not None and item.snoozed_until > now:
                continue
            snoozed_until = item.snoozed_until
            self._enter(item, QueueStatus.PENDING, now)
            self._refresh_sla(item, now)
            self._touch(item, now, user_action=False)

            await self.repository.upsert(item)
            await self.history.record(
                item.id,
                HistoryAction.RESURFACED,
                {"snoozed_until": snoozed_until.isoformat() if snoozed_until else None},
            )
            resurfaced.append(item)

        if resurfaced:
            logger.info("Snoozed items resurfaced", count=len(resurfaced))
        return resurfaced

    async def mark_completed(self, item_id: str) -> FollowUpItem:
        now = self._clock()
        item = await self._require(item_id)
        previous = self._enter(item, QueueStatus.COMPLETED, now)
        self._touch(item, now, user_action=True)

        await self.repository.upsert(item)
        await self.history.record(item.id, HistoryAction.COMPLETED, {"from": previous.value})
        return item

    # =========================================================================
    # Additional transitions
    # =========================================================================

    async def start_processing(self, item_id: str) -> FollowUpItem:
        now = self._clock()
        item = await self._require(item_id)
        if item.status != QueueStatus.PENDING:
            raise InvalidTransitionError(
                f"Only pending items can start processing (item {item.id} is {item.status})",
                current=item.status.value,
                requested=QueueStatus.PROCESSING.value,
            )
        self._enter(item, QueueStatus.PROCESSING, now)
        self._touch(item, now, user_action=True)

        await self.repository.upsert(item)
        await self.history.record(item.id, HistoryAction.UPDATED, {"status": item.status.value})
        return item

    async def archive_item(self, item_id: str) -> FollowUpItem:
        now = self._clock()
        item = await self._require(item_id)
        previous = self._enter(item, QueueStatus.ARCHIVED, now)
        self._touch(item, now, user_action=True)

        await self.repository.upsert(item)
        await self.history.record(item.id, HistoryAction.ARCHIVED, {"from": previous.value})
        return item

    async def remove_item(self, item_id: str) -> None:
        item = await self._require(item_id)
        await self.repository.delete(item.id)
        await self.history.record(item.id, HistoryAction.REMOVED, {"status": item.status.value})

    async def escalate_item(
        self, item_id: str, priority: Priority, reason: str | None = None
    ) -> FollowUpItem:
        """Raise an active item's priority; the SLA deadline is left as computed."""
        now = self._clock()
        item = await self._require(item_id)
        if not item.status.is_active:
            raise InvalidTransitionError(
                f"Cannot escalate {item.status} item {item.id}",
                current=item.status.value,
                requested=item.status.value,
            )
        if priority.rank <= item.priority.rank:
            raise ValidationError(
                f"Escalation must raise priority ({item.priority} -> {priority})", field="priority"
            )

        previous = item.priority
        item.priority = priority
        self._refresh_sla(item, now)
        self._touch(item, now, user_action=False)

        await self.repository.upsert(item)
        await self.history.record(
            item.id,
            HistoryAction.ESCALATED,
            {"from": previous.value, "to": priority.value, "reason": reason},
        )
        return item

    async def apply_sla_status(
        self, item_id: str, status: SLAStatus, alerted_at: datetime | None
    ) -> FollowUpItem:
        """System write from the SLA sweep; leaves action counters alone."""
        item = await self._require(item_id)
        item.sla_status = status
        item.sla_alerted_at = alerted_at
        self._touch(item, self._clock(), user_action=False)
        await self.repository.upsert(item)
        return item

    async def get_history(self, item_id: str) -> list[QueueHistoryEntry]:
        entries = await self.history.list_for_item(item_id)
        return sorted(entries, key=lambda e: e.timestamp)

    # =========================================================================
    # Admission
    # =========================================================================

    @staticmethod
    def is_admissible(classification: ClassificationResult) -> bool:
        """Low-priority auto-archive candidates stay out of the queue."""
        auto_archive = (
            any(isinstance(a, ArchiveAction) for a in classification.suggested_actions)
            or classification.is_newsletter
            or classification.is_automated
        )
        return not (
            classification.priority == Priority.LOW
            and auto_archive
            and not classification.is_vip
            and not classification.needs_reply
        )

    @staticmethod
    def reason_for(classification: ClassificationResult) -> FollowUpReason:
        if classification.waiting_on_others:
            return FollowUpReason.WAITING_ON_INFO
        if classification.is_vip:
            return FollowUpReason.VIP_REQUIRES_ATTENTION
        if classification.needs_reply:
            return FollowUpReason.NEEDS_REPLY
        if classification.priority in (Priority.CRITICAL, Priority.HIGH):
            return FollowUpReason.REQUIRES_ACTION
        return FollowUpReason.FOLLOW_UP_SCHEDULED

    async def process_new_classification(
        self,
        classification: ClassificationResult,
        email_meta: EmailMeta,
        vip: VIPContact | None = None,
    ) -> str | None:
        existing = await self.repository.find_by_email_id(classification.email_id)
        if existing is not None:
            logger.debug("Email already queued", email_id=classification.email_id, item_id=existing.id)
            return existing.id

        if not self.is_admissible(classification):
            logger.info(
                "Email not admitted to follow-up queue",
                email_id=classification.email_id,
                priority=classification.priority.value,
            )
            return None

        item = FollowUpItem(
            id=str(uuid.uuid4()),
            email_id=classification.email_id,
            thread_id=email_meta.thread_id,
            subject=email_meta.subject,
            sender=email_meta.sender,
            to=list(email_meta.to),
            received_date=email_meta.received_date,
            priority=classification.priority,
            category=classification.category,
            labels=list(classification.labels),
            reason=self.reason_for(classification),
            ai_reasoning=classification.reasoning or None,
            is_vip=classification.is_vip,
            vip_tier=classification.vip_tier,
            suggested_actions=[_action_string(a) for a in classification.suggested_actions],
            importance=classification.importance,
        )
        return await self.add_item(item, vip=vip)

    # =========================================================================
    # Bulk operations
    # =========================================================================

    async def _bulk(
        self,
        operation: str,
        item_ids: Iterable[str],
        apply: Callable[[str], Awaitable[Any]],
    ) -> BulkOperationResult:
        result = BulkOperationResult()
        for item_id in item_ids:
            try:
                await apply(item_id)
                result.successful.append(item_id)
            except TriageError as e:
                logger.warning(
                    "Bulk operation item failed",
                    operation=operation,
                    item_id=item_id,
                    error=e.code,
                    message=str(e),
                )
                result.failed.append(BulkFailure(id=item_id, error=e.code, message=str(e)))

        logger.info(
            "Bulk operation finished",
            operation=operation,
            successful=len(result.successful),
            failed=len(result.failed),
        )
        return result

    async def bulk_snooze(self, item_ids: Iterable[str], options: SnoozeOptions) -> BulkOperationResult:
        return await self._bulk("snooze", item_ids, lambda i: self.snooze_item(i, options))

    async def bulk_complete(self, item_ids: Iterable[str]) -> BulkOperationResult:
        return await self._bulk("complete", item_ids, self.mark_completed)

    async def bulk_archive(self, item_ids: Iterable[str]) -> BulkOperationResult:
        return await self._bulk("archive", item_ids, self.archive_item)

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_statistics(self, now: datetime | None = None) -> QueueStatistics:
        now = now or self._clock()
        items = await self.repository.list()
        calendar = self.sla_tracker.calendar

        by_status = {s.value: 0 for s in QueueStatus}
        by_priority = {p.value: 0 for p in Priority}
        by_sla_status = {s.value: 0 for s in SLAStatus}
        response_times: list[float] = []
        time_in_queue: list[float] = []
        wait_times: list[float] = []
        snooze_durations: list[float] = []

        local_now = calendar.to_local(now)
        today = local_now.date()
        week_start = today - timedelta(days=today.weekday())
        completed_today = 0
        completed_this_week = 0

        for item in items:
            by_status[item.status.value] += 1
            if item.snoozed_at is not None and item.snoozed_until is not None:
                snooze_durations.append(_hours(item.snoozed_until - item.snoozed_at))

            if item.status.is_active:
                by_priority[item.priority.value] += 1
                if item.sla_status is not None:
                    by_sla_status[item.sla_status.value] += 1
                if item.added_at is not None:
                    time_in_queue.append(_hours(now - item.added_at))
                if item.reason == FollowUpReason.WAITING_ON_INFO and item.received_date is not None:
                    wait_times.append(_hours(now - item.received_date))

            if item.status == QueueStatus.COMPLETED and item.completed_at is not None:
                if item.received_date is not None:
                    response_times.append(_hours(item.completed_at - item.received_date))
                completed_day = calendar.to_local(item.completed_at).date()
                if completed_day == today:
                    completed_today += 1
                if week_start <= completed_day <= today:
                    completed_this_week += 1

        return QueueStatistics(
            total=len(items),
            by_status=by_status,
            by_priority=by_priority,
            by_sla_status=by_sla_status,
            average_response_time_hours=_average(response_times),
            average_time_in_queue_hours=_average(time_in_queue),
            average_wait_time_hours=_average(wait_times),
            average_snooze_duration_hours=_average(snooze_durations),
            completed_today=completed_today,
            completed_this_week=completed_this_week,
            as_of=now,
        )
