"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, builds the service container and delegates to the matching
scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from inbox_triage.config import settings
from inbox_triage.container import TriageContainer, build_container
from inbox_triage.infrastructure.observability.logging import get_logger, setup_logging
from inbox_triage.jobs.sla_overdue_job import start_sla_overdue_scheduler
from inbox_triage.jobs.snooze_resurface_job import start_snooze_resurface_scheduler

logger = get_logger(__name__)

JobCoroutine = Callable[[TriageContainer], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "snooze_resurface": start_snooze_resurface_scheduler,
    "sla_overdue": start_sla_overdue_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "snooze_resurface").strip().lower()


async def run_worker(job_name: str | None = None, container: TriageContainer | None = None) -> None:
    """
    Run the requested background job.

    A container passed in is used as-is and its lifecycle is left to the
    caller; otherwise one is built from the environment, started, and shut
    down when the job returns.
    """
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    if container is not None:
        logger.info("Starting background worker", job_name=name)
        await JOB_REGISTRY[name](container)
        return

    owned = build_container(settings)
    await owned.startup()
    try:
        logger.info("Starting background worker", job_name=name)
        await JOB_REGISTRY[name](owned)
    finally:
        await owned.shutdown()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
