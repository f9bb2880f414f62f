"""
Structured logging using structlog.

API and worker processes share this setup; job-scoped context (job_id,
job_type) is bound with structlog contextvars by the job processor and
merged into every event logged while the job runs.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict

from site_audit.core.config import get_settings

SEVERITY_BY_METHOD = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "warn": "WARNING",
    "error": "ERROR",
    "exception": "ERROR",
    "critical": "CRITICAL",
}

# Chatty below WARNING during a crawl: one line per request or task event
NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "celery", "kombu")


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Severity field understood by GCP/Datadog log ingestion."""
    event_dict["severity"] = SEVERITY_BY_METHOD.get(method, "INFO")
    return event_dict


def add_service(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    settings = get_settings()
    event_dict.setdefault("service", "site-audit")
    event_dict.setdefault("version", settings.APP_VERSION)
    return event_dict


def configure_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Overrides LOG_LEVEL
        log_format: "json" or "console"; overrides LOG_FORMAT
    """
    settings = get_settings()
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    fmt = log_format or settings.LOG_FORMAT

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_severity,
        add_service,
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    if not settings.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))
