from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from inbox_triage.container import build_container
from inbox_triage.jobs.sla_overdue_job import SLAOverdueJob
from inbox_triage.jobs.snooze_resurface_job import SnoozeResurfaceJob, run_snooze_resurface_job
from inbox_triage.models.domain.enums import Priority, QueueStatus
from inbox_triage.models.domain.queue import SnoozeOptions
from inbox_triage.services.cache import InMemoryCache


@pytest.fixture
def container(settings, clock):
    return build_container(settings, clock)


def new_item(email_id, **fields):
    return {"email_id": email_id, "thread_id": f"thread-{email_id}", **fields}


# =========================================================================
# Container
# =========================================================================


@pytest.mark.asyncio
async def test_container_defaults_to_memory_backends(container):
    await container.startup()

    assert container.db_pool is None
    assert container.summarizer is None
    assert isinstance(container.cache, InMemoryCache)
    assert container.sla_tracker.calendar is container.snooze_engine.calendar
    assert container.started == []

    await container.shutdown()


# =========================================================================
# Snooze resurface
# =========================================================================


@pytest.mark.asyncio
async def test_snooze_job_resurfaces_due_items(container, clock):
    queue = container.queue
    item_id = await queue.add_item(new_item("msg-1"))
    await queue.snooze_item(item_id, SnoozeOptions(until=clock() + timedelta(hours=1)))
    clock.advance(hours=1, minutes=5)

    result = await run_snooze_resurface_job(container)

    assert result["success"] is True
    assert result["resurfaced"] == 1
    assert result["item_ids"] == [item_id]
    assert (await queue.get_item(item_id)).status == QueueStatus.PENDING


@pytest.mark.asyncio
async def test_snooze_job_skips_when_already_running(container):
    job = SnoozeResurfaceJob(container)
    job.is_running = True

    assert await job.run_once() == {"skipped": True, "reason": "already_running"}


@pytest.mark.asyncio
async def test_snooze_job_reports_failures(container, monkeypatch):
    monkeypatch.setattr(
        container.queue, "check_snoozed_items", AsyncMock(side_effect=RuntimeError("store down"))
    )
    job = SnoozeResurfaceJob(container)

    result = await job.run_once()

    assert result["success"] is False
    assert result["errors"] == ["store down"]
    assert job.is_running is False
    assert job.last_result is result


# =========================================================================
# SLA overdue
# =========================================================================


@pytest.mark.asyncio
async def test_sla_job_reports_overdue_once_and_escalates(container, clock):
    queue = container.queue
    overdue_id = await queue.add_item(
        new_item("msg-1", priority="HIGH", sla_deadline=clock() + timedelta(hours=1))
    )
    clock.advance(hours=2)
    at_risk_id = await queue.add_item(
        new_item("msg-2", priority="HIGH", sla_deadline=clock() + timedelta(hours=1))
    )
    job = SLAOverdueJob(container)

    first = await job.run_once()
    second = await job.run_once()

    assert first["success"] is True
    assert first["newly_overdue"] == 1
    assert first["overdue_item_ids"] == [overdue_id]
    assert first["escalated"] == 1
    assert (await queue.get_item(at_risk_id)).priority == Priority.CRITICAL
    assert second["newly_overdue"] == 0
    assert second["escalated"] == 0


@pytest.mark.asyncio
async def test_sla_job_escalation_can_be_disabled(settings, clock):
    container = build_container(settings.model_copy(update={"SLA_ESCALATE_AT_RISK": False}), clock)
    item_id = await container.queue.add_item(
        new_item("msg-1", priority="HIGH", sla_deadline=clock() + timedelta(hours=1))
    )

    result = await SLAOverdueJob(container).run_once()

    assert result["escalated"] == 0
    assert (await container.queue.get_item(item_id)).priority == Priority.HIGH


@pytest.mark.asyncio
async def test_sla_job_keeps_going_when_escalation_fails(container, clock, monkeypatch):
    await container.queue.add_item(
        new_item("msg-1", priority="HIGH", sla_deadline=clock() - timedelta(minutes=5))
    )
    monkeypatch.setattr(
        container.sla_tracker, "escalate_at_risk", AsyncMock(side_effect=RuntimeError("boom"))
    )
    job = SLAOverdueJob(container)

    result = await job.run_once()

    assert result["success"] is False
    assert result["newly_overdue"] == 1
    assert result["errors"] == ["Escalation: boom"]
    assert job.is_running is False
