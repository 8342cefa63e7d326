"""
In-memory repositories.

Used by tests and by single-process deployments without DATABASE_URL.
Reads and writes copy records so a caller mutating a returned object never
changes stored state behind the queue's back.
"""

import copy
import dataclasses
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from inbox_triage.models.domain.classification import FeedbackEvent
from inbox_triage.models.domain.enums import QueueStatus
from inbox_triage.models.domain.queue import FollowUpItem, QueueHistoryEntry
from inbox_triage.models.domain.vip import VIPContact


class InMemoryFollowUpRepository:
    def __init__(self) -> None:
        self._items: dict[str, FollowUpItem] = {}

    async def get(self, item_id: str) -> FollowUpItem | None:
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item else None

    async def list(self, statuses: Iterable[QueueStatus] | None = None) -> list[FollowUpItem]:
        wanted = set(statuses) if statuses is not None else None
        return [
            copy.deepcopy(item)
            for item in self._items.values()
            if wanted is None or item.status in wanted
        ]

    async def find_by_email_id(self, email_id: str) -> FollowUpItem | None:
        for item in self._items.values():
            if item.email_id == email_id:
                return copy.deepcopy(item)
        return None

    async def upsert(self, item: FollowUpItem) -> None:
        self._items[item.id] = copy.deepcopy(item)

    async def delete(self, item_id: str) -> bool:
        return self._items.pop(item_id, None) is not None


class InMemoryVipRepository:
    def __init__(self, vips: Iterable[VIPContact] = ()) -> None:
        self._vips: dict[str, VIPContact] = {v.pattern: copy.copy(v) for v in vips}

    async def list(self) -> list[VIPContact]:
        return [copy.copy(v) for v in self._vips.values()]

    async def get(self, pattern: str) -> VIPContact | None:
        vip = self._vips.get(pattern)
        return copy.copy(vip) if vip else None

    async def upsert(self, vip: VIPContact) -> None:
        self._vips[vip.pattern] = copy.copy(vip)

    async def delete(self, pattern: str) -> bool:
        return self._vips.pop(pattern, None) is not None


class InMemoryRuleRepository:
    def __init__(self, records: Iterable[dict[str, Any]] = ()) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        for record in records:
            self._records[str(record.get("id"))] = copy.deepcopy(record)

    async def list_records(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def get_record(self, rule_id: str) -> dict[str, Any] | None:
        record = self._records.get(rule_id)
        return copy.deepcopy(record) if record else None

    async def upsert_record(self, record: dict[str, Any]) -> None:
        self._records[str(record["id"])] = copy.deepcopy(record)

    async def delete_record(self, rule_id: str) -> bool:
        return self._records.pop(rule_id, None) is not None


class InMemoryFeedbackLog:
    def __init__(self) -> None:
        self._events: list[FeedbackEvent] = []

    async def append(self, event: FeedbackEvent) -> FeedbackEvent:
        stored = dataclasses.replace(event, sequence=len(self._events) + 1)
        self._events.append(stored)
        return stored

    async def list(self, since: datetime | None = None) -> list[FeedbackEvent]:
        if since is None:
            return list(self._events)
        return [e for e in self._events if e.timestamp >= since]


class InMemoryHistoryLog:
    def __init__(self) -> None:
        self._entries: list[QueueHistoryEntry] = []

    async def append(self, entry: QueueHistoryEntry) -> None:
        self._entries.append(copy.deepcopy(entry))

    async def list_for_item(self, item_id: str) -> list[QueueHistoryEntry]:
        return [copy.deepcopy(e) for e in self._entries if e.item_id == item_id]
