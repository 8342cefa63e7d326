"""
Postgres-backed repositories.

Each store is one table keyed by its natural id with the record itself in a
JSONB `payload` column shaped by the boundary models. Lookup columns
(status, email_id, timestamps) are duplicated out of the payload for
indexing. Database failures surface as UpstreamUnavailable.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from psycopg.types.json import Jsonb

from inbox_triage.core.errors import UpstreamUnavailable
from inbox_triage.db.helpers import DatabaseError, execute_query, execute_script, fetch_all, fetch_one
from inbox_triage.db.pool import DatabasePoolManager
from inbox_triage.infrastructure.observability.logging import get_logger
from inbox_triage.models.api.triage_response import (
    FeedbackEventRecord,
    FollowUpItemResponse,
    QueueHistoryRecord,
    VIPContactRecord,
)
from inbox_triage.models.domain.classification import FeedbackEvent
from inbox_triage.models.domain.enums import QueueStatus
from inbox_triage.models.domain.queue import FollowUpItem, QueueHistoryEntry
from inbox_triage.models.domain.vip import VIPContact

logger = get_logger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS followup_items (
        id TEXT PRIMARY KEY,
        email_id TEXT NOT NULL,
        status TEXT NOT NULL,
        payload JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_followup_items_status ON followup_items (status)",
    "CREATE INDEX IF NOT EXISTS idx_followup_items_email ON followup_items (email_id)",
    """
    CREATE TABLE IF NOT EXISTS vip_contacts (
        pattern TEXT PRIMARY KEY,
        payload JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS triage_rules (
        id TEXT PRIMARY KEY,
        payload JSONB NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS classification_feedback (
        sequence BIGSERIAL PRIMARY KEY,
        email_id TEXT NOT NULL,
        recorded_at TIMESTAMPTZ NOT NULL,
        payload JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS followup_history (
        id BIGSERIAL PRIMARY KEY,
        item_id TEXT NOT NULL,
        recorded_at TIMESTAMPTZ NOT NULL,
        payload JSONB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_followup_history_item ON followup_history (item_id)",
]


async def ensure_schema(pool: DatabasePoolManager) -> None:
    """Create the triage tables if they do not exist."""
    try:
        await execute_script(pool, SCHEMA_STATEMENTS)
    except DatabaseError as e:
        raise UpstreamUnavailable(f"Schema setup failed: {e}", service="postgres") from e
    logger.info("Triage schema ensured", tables=5)


def _unavailable(operation: str, error: DatabaseError) -> UpstreamUnavailable:
    logger.error("Repository operation failed", operation=operation, error=str(error))
    return UpstreamUnavailable(f"{operation} failed: {error}", service="postgres")


class PostgresFollowUpRepository:
    SELECT = "SELECT id, payload FROM followup_items"

    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    @staticmethod
    def _row_to_item(row: dict | None) -> FollowUpItem | None:
        if not row:
            return None
        return FollowUpItemResponse.model_validate(row["payload"]).to_domain()

    async def get(self, item_id: str) -> FollowUpItem | None:
        try:
            row = await fetch_one(self.pool, f"{self.SELECT} WHERE id = %s", (item_id,))
        except DatabaseError as e:
            raise _unavailable("followup.get", e) from e
        return self._row_to_item(row)

    async def list(self, statuses: Iterable[QueueStatus] | None = None) -> list[FollowUpItem]:
        try:
            if statuses is None:
                rows = await fetch_all(self.pool, self.SELECT)
            else:
                wanted = [QueueStatus(s).value for s in statuses]
                rows = await fetch_all(
                    self.pool, f"{self.SELECT} WHERE status = ANY(%s)", (wanted,)
                )
        except DatabaseError as e:
            raise _unavailable("followup.list", e) from e
        return [self._row_to_item(row) for row in rows]

    async def find_by_email_id(self, email_id: str) -> FollowUpItem | None:
        try:
            row = await fetch_one(
                self.pool, f"{self.SELECT} WHERE email_id = %s LIMIT 1", (email_id,)
            )
        except DatabaseError as e:
            raise _unavailable("followup.find_by_email_id", e) from e
        return self._row_to_item(row)

    async def upsert(self, item: FollowUpItem) -> None:
        payload = FollowUpItemResponse.from_domain(item).model_dump(mode="json")
        query = """
            INSERT INTO followup_items (id, email_id, status, payload, updated_at)
            VALUES (%s, %s, %s, %s, now())
            ON CONFLICT (id) DO UPDATE
            SET email_id = EXCLUDED.email_id,
                status = EXCLUDED.status,
                payload = EXCLUDED.payload,
                updated_at = now()
        """
        try:
            await execute_query(
                self.pool, query, (item.id, item.email_id, item.status.value, Jsonb(payload))
            )
        except DatabaseError as e:
            raise _unavailable("followup.upsert", e) from e

    async def delete(self, item_id: str) -> bool:
        try:
            deleted = await execute_query(
                self.pool, "DELETE FROM followup_items WHERE id = %s", (item_id,)
            )
        except DatabaseError as e:
            raise _unavailable("followup.delete", e) from e
        return deleted > 0


class PostgresVipRepository:
    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    @staticmethod
    def _row_to_vip(row: dict | None) -> VIPContact | None:
        if not row:
            return None
        return VIPContactRecord.model_validate(row["payload"]).to_domain()

    async def list(self) -> list[VIPContact]:
        try:
            rows = await fetch_all(self.pool, "SELECT pattern, payload FROM vip_contacts")
        except DatabaseError as e:
            raise _unavailable("vip.list", e) from e
        return [self._row_to_vip(row) for row in rows]

    async def get(self, pattern: str) -> VIPContact | None:
        try:
            row = await fetch_one(
                self.pool, "SELECT pattern, payload FROM vip_contacts WHERE pattern = %s", (pattern,)
            )
        except DatabaseError as e:
            raise _unavailable("vip.get", e) from e
        return self._row_to_vip(row)

    async def upsert(self, vip: VIPContact) -> None:
        payload = VIPContactRecord.from_domain(vip).model_dump(mode="json")
        query = """
            INSERT INTO vip_contacts (pattern, payload) VALUES (%s, %s)
            ON CONFLICT (pattern) DO UPDATE SET payload = EXCLUDED.payload
        """
        try:
            await execute_query(self.pool, query, (vip.pattern, Jsonb(payload)))
        except DatabaseError as e:
            raise _unavailable("vip.upsert", e) from e

    async def delete(self, pattern: str) -> bool:
        try:
            deleted = await execute_query(
                self.pool, "DELETE FROM vip_contacts WHERE pattern = %s", (pattern,)
            )
        except DatabaseError as e:
            raise _unavailable("vip.delete", e) from e
        return deleted > 0


class PostgresRuleRepository:
    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def list_records(self) -> list[dict[str, Any]]:
        try:
            rows = await fetch_all(self.pool, "SELECT id, payload FROM triage_rules")
        except DatabaseError as e:
            raise _unavailable("rules.list", e) from e
        return [dict(row["payload"]) for row in rows]

    async def get_record(self, rule_id: str) -> dict[str, Any] | None:
        try:
            row = await fetch_one(
                self.pool, "SELECT id, payload FROM triage_rules WHERE id = %s", (rule_id,)
            )
        except DatabaseError as e:
            raise _unavailable("rules.get", e) from e
        return dict(row["payload"]) if row else None

    async def upsert_record(self, record: dict[str, Any]) -> None:
        query = """
            INSERT INTO triage_rules (id, payload, updated_at) VALUES (%s, %s, now())
            ON CONFLICT (id) DO UPDATE SET payload = EXCLUDED.payload, updated_at = now()
        """
        try:
            await execute_query(self.pool, query, (str(record["id"]), Jsonb(record)))
        except DatabaseError as e:
            raise _unavailable("rules.upsert", e) from e

    async def delete_record(self, rule_id: str) -> bool:
        try:
            deleted = await execute_query(
                self.pool, "DELETE FROM triage_rules WHERE id = %s", (rule_id,)
            )
        except DatabaseError as e:
            raise _unavailable("rules.delete", e) from e
        return deleted > 0


class PostgresFeedbackLog:
    """Append-only; rows are never updated or deleted."""

    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def append(self, event: FeedbackEvent) -> FeedbackEvent:
        payload = FeedbackEventRecord.from_domain(event).model_dump(mode="json")
        query = """
            INSERT INTO classification_feedback (email_id, recorded_at, payload)
            VALUES (%s, %s, %s)
            RETURNING sequence
        """
        try:
            row = await fetch_one(
                self.pool, query, (event.feedback.email_id, event.timestamp, Jsonb(payload))
            )
        except DatabaseError as e:
            raise _unavailable("feedback.append", e) from e

        record = FeedbackEventRecord.model_validate({**payload, "sequence": row["sequence"]})
        return record.to_domain()

    async def list(self, since: datetime | None = None) -> list[FeedbackEvent]:
        query = "SELECT sequence, payload FROM classification_feedback"
        params: tuple = ()
        if since is not None:
            query += " WHERE recorded_at >= %s"
            params = (since,)
        query += " ORDER BY recorded_at, sequence"

        try:
            rows = await fetch_all(self.pool, query, params)
        except DatabaseError as e:
            raise _unavailable("feedback.list", e) from e

        return [
            FeedbackEventRecord.model_validate({**row["payload"], "sequence": row["sequence"]})
            .to_domain()
            for row in rows
        ]


class PostgresHistoryLog:
    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def append(self, entry: QueueHistoryEntry) -> None:
        payload = QueueHistoryRecord.from_domain(entry).model_dump(mode="json")
        query = """
            INSERT INTO followup_history (item_id, recorded_at, payload) VALUES (%s, %s, %s)
        """
        try:
            await execute_query(self.pool, query, (entry.item_id, entry.timestamp, Jsonb(payload)))
        except DatabaseError as e:
            raise _unavailable("history.append", e) from e

    async def list_for_item(self, item_id: str) -> list[QueueHistoryEntry]:
        query = """
            SELECT payload FROM followup_history WHERE item_id = %s ORDER BY recorded_at, id
        """
        try:
            rows = await fetch_all(self.pool, query, (item_id,))
        except DatabaseError as e:
            raise _unavailable("history.list", e) from e
        return [QueueHistoryRecord.model_validate(row["payload"]).to_domain() for row in rows]
