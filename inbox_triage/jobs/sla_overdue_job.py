"""
SLA Overdue Job - reports newly overdue follow-ups and escalates at-risk ones.

Runs every SLA_CHECK_INTERVAL_MINUTES. An item is reported once per
crossing into OVERDUE (tracked with `sla_alerted_at`), so the job can be
re-run at any time without duplicate alerts.
"""

import asyncio
import time

from inbox_triage.container import TriageContainer
from inbox_triage.infrastructure.observability.logging import get_logger, log_job_cycle

logger = get_logger(__name__)

JOB_NAME = "sla_overdue"
ERROR_BACKOFF_SECONDS = 60


class SLAOverdueJob:
    def __init__(self, container: TriageContainer):
        self.container = container
        self.is_running = False
        self.last_result: dict | None = None

    async def run_once(self) -> dict:
        if self.is_running:
            logger.warning("SLA overdue job already running, skipping")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        started = time.monotonic()
        tracker = self.container.sla_tracker
        queue = self.container.queue
        result: dict = {
            "success": True,
            "newly_overdue": 0,
            "overdue_item_ids": [],
            "escalated": 0,
            "errors": [],
        }

        try:
            # ================================================================
            # 1. Report items that crossed into OVERDUE
            # ================================================================
            try:
                overdue = await tracker.check_and_alert_overdue(queue)
                result["newly_overdue"] = len(overdue)
                result["overdue_item_ids"] = [item.id for item in overdue]
            except Exception as e:
                logger.error("Overdue check failed", error=str(e), error_type=type(e).__name__)
                result["success"] = False
                result["errors"].append(f"Overdue check: {e}")

            # ================================================================
            # 2. Escalate AT_RISK items one priority level
            # ================================================================
            if self.container.settings.SLA_ESCALATE_AT_RISK:
                try:
                    escalated = await tracker.escalate_at_risk(queue)
                    result["escalated"] = len(escalated)
                except Exception as e:
                    logger.error(
                        "At-risk escalation failed", error=str(e), error_type=type(e).__name__
                    )
                    result["success"] = False
                    result["errors"].append(f"Escalation: {e}")

        finally:
            self.is_running = False

        result["duration_seconds"] = round(time.monotonic() - started, 3)
        self.last_result = result
        return result


async def run_sla_overdue_job(container: TriageContainer) -> dict:
    """Run a single SLA sweep outside the scheduler."""
    return await SLAOverdueJob(container).run_once()


async def start_sla_overdue_scheduler(container: TriageContainer) -> None:
    interval_minutes = container.settings.SLA_CHECK_INTERVAL_MINUTES
    job = SLAOverdueJob(container)
    logger.info("Starting SLA overdue scheduler", interval_minutes=interval_minutes)

    while True:
        try:
            result = await job.run_once()
            log_job_cycle(JOB_NAME, result)
            await asyncio.sleep(interval_minutes * 60)

        except Exception as e:
            logger.error("Error in SLA overdue scheduler", error=str(e), error_type=type(e).__name__)
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)
