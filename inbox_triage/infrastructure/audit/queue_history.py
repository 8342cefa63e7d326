"""
QueueHistoryRecorder - audit trail for follow-up queue mutations.

Every queue mutation is written to:
1. Structured logs (stdout) - real-time monitoring
2. The history log store - queryable per item via get_history()

Usage:
    recorder = QueueHistoryRecorder(history_log, clock)

    await recorder.record(
        item_id=item.id,
        action=HistoryAction.SNOOZED,
        details={"until": until.isoformat(), "smart": True},
    )

Design Principles:
- Log first, then persist
- Never fail the queue operation if the history write fails
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.domain.enums import HistoryAction
from inbox_triage.models.domain.queue import QueueHistoryEntry
from inbox_triage.repositories.base import HistoryLog

logger = get_logger(__name__)


class QueueHistoryRecorder:
    def __init__(self, history_log: HistoryLog, clock: Callable[[], datetime] | None = None):
        self.history_log = history_log
        self._clock = clock or (lambda: datetime.now(UTC))

    async def record(
        self,
        item_id: str,
        action: HistoryAction,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """
        Log a queue event to structured logs and the history store.

        Returns:
            True if persisted, False if the store write failed (never raises)
        """
        entry = QueueHistoryEntry(
            item_id=item_id,
            action=action,
            timestamp=self._clock(),
            details=details or {},
        )

        logger.info(
            "Queue audit event",
            audit_action=action.value,
            item_id=item_id,
            details=entry.details,
        )

        try:
            await self.history_log.append(entry)
            return True

        except Exception as e:
            # The queue write already happened; keep enough context to rebuild the entry
            logger.error(
                "Failed to write queue history entry",
                error=str(e),
                error_type=type(e).__name__,
                item_id=item_id,
                audit_action=action.value,
                fallback_data={
                    "item_id": item_id,
                    "action": action.value,
                    "details": entry.details,
                    "timestamp": entry.timestamp.isoformat(),
                },
            )
            return False

    async def list_for_item(self, item_id: str) -> list[QueueHistoryEntry]:
        return await self.history_log.list_for_item(item_id)
