"""
Structured logging setup for the triage engine.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_component_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)


def _add_component_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag each entry with the top-level component that emitted it."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith("inbox_triage."):
        event_dict.setdefault("component", name.split(".")[-1])
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_job_cycle(job: str, result: dict[str, Any]) -> None:
    """Log a background sweep result with consistent fields."""
    logger = get_logger("jobs")

    if result.get("skipped"):
        logger.info("Job cycle skipped", job=job, reason=result.get("reason"))
    elif result.get("errors"):
        logger.warning("Job cycle completed with errors", job=job, **result)
    else:
        logger.info("Job cycle completed", job=job, **result)
