"""
Persistence interfaces the engine depends on.

Each is a structural Protocol so the in-memory and Postgres adapters (or a
test double) can be passed in without inheritance. Every call is a
single-record operation; nothing here assumes a multi-record transaction.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from inbox_triage.models.domain.classification import FeedbackEvent
from inbox_triage.models.domain.enums import QueueStatus
from inbox_triage.models.domain.queue import FollowUpItem, QueueHistoryEntry
from inbox_triage.models.domain.vip import VIPContact


class FollowUpRepository(Protocol):
    async def get(self, item_id: str) -> FollowUpItem | None: ...

    async def list(self, statuses: Iterable[QueueStatus] | None = None) -> list[FollowUpItem]: ...

    async def find_by_email_id(self, email_id: str) -> FollowUpItem | None: ...

    async def upsert(self, item: FollowUpItem) -> None: ...

    async def delete(self, item_id: str) -> bool: ...


class VipRepository(Protocol):
    async def list(self) -> list[VIPContact]: ...

    async def get(self, pattern: str) -> VIPContact | None: ...

    async def upsert(self, vip: VIPContact) -> None: ...

    async def delete(self, pattern: str) -> bool: ...


class RuleRepository(Protocol):
    """Rules are stored as raw records; parsing happens in the rules engine."""

    async def list_records(self) -> list[dict[str, Any]]: ...

    async def get_record(self, rule_id: str) -> dict[str, Any] | None: ...

    async def upsert_record(self, record: dict[str, Any]) -> None: ...

    async def delete_record(self, rule_id: str) -> bool: ...


class FeedbackLog(Protocol):
    """Append-only, timestamp-ordered feedback events."""

    async def append(self, event: FeedbackEvent) -> FeedbackEvent: ...

    async def list(self, since: datetime | None = None) -> list[FeedbackEvent]: ...


class HistoryLog(Protocol):
    async def append(self, entry: QueueHistoryEntry) -> None: ...

    async def list_for_item(self, item_id: str) -> list[QueueHistoryEntry]: ...
