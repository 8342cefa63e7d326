"""
Snooze Resurface Job - returns snoozed follow-ups to the pending queue.

Runs every SNOOZE_CHECK_INTERVAL_MINUTES. Each cycle calls
FollowUpQueue.check_snoozed_items(), which only touches items whose
snooze time has passed, so overlapping or repeated runs are harmless.

Usage:
    import asyncio
    from inbox_triage.jobs.snooze_resurface_job import start_snooze_resurface_scheduler

    asyncio.create_task(start_snooze_resurface_scheduler(container))
"""

import asyncio
import time

from inbox_triage.container import TriageContainer
from inbox_triage.infrastructure.observability.logging import get_logger, log_job_cycle

logger = get_logger(__name__)

JOB_NAME = "snooze_resurface"
ERROR_BACKOFF_SECONDS = 60


class SnoozeResurfaceJob:
    def __init__(self, container: TriageContainer):
        self.container = container
        self.is_running = False
        self.last_result: dict | None = None

    async def run_once(self) -> dict:
        """
        Resurface due snoozed items.

        Returns:
            dict: {"success": bool, "resurfaced": int, "item_ids": list, "duration_seconds": float}
            or {"skipped": True, "reason": "already_running"}
        """
        if self.is_running:
            logger.warning("Snooze resurface job already running, skipping")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        started = time.monotonic()
        result: dict = {"success": True, "resurfaced": 0, "item_ids": [], "errors": []}

        try:
            resurfaced = await self.container.queue.check_snoozed_items()
            result["resurfaced"] = len(resurfaced)
            result["item_ids"] = [item.id for item in resurfaced]

        except Exception as e:
            logger.error("Snooze resurface job failed", error=str(e), error_type=type(e).__name__)
            result["success"] = False
            result["errors"].append(str(e))

        finally:
            self.is_running = False

        result["duration_seconds"] = round(time.monotonic() - started, 3)
        self.last_result = result
        return result


async def run_snooze_resurface_job(container: TriageContainer) -> dict:
    """Run a single resurface cycle outside the scheduler."""
    return await SnoozeResurfaceJob(container).run_once()


async def start_snooze_resurface_scheduler(container: TriageContainer) -> None:
    interval_minutes = container.settings.SNOOZE_CHECK_INTERVAL_MINUTES
    job = SnoozeResurfaceJob(container)
    logger.info("Starting snooze resurface scheduler", interval_minutes=interval_minutes)

    while True:
        try:
            result = await job.run_once()
            log_job_cycle(JOB_NAME, result)
            await asyncio.sleep(interval_minutes * 60)

        except Exception as e:
            logger.error(
                "Error in snooze resurface scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)
