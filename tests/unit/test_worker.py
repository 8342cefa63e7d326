from types import SimpleNamespace

import pytest

from inbox_triage.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"container": None}
    container = SimpleNamespace(name="test-container")

    async def dummy_job(received):
        called["container"] = received

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy", container=container)

    assert called["container"] is container


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_job_name_from_environment(monkeypatch):
    monkeypatch.setattr(worker.sys, "argv", ["inbox-triage-worker"])
    monkeypatch.setenv("WORKER_JOB", " SLA_Overdue ")

    assert worker._resolve_job_name() == "sla_overdue"
