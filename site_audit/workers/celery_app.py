"""
Celery application for audit workers.

Queues:
- audit_queue: one crawl + analysis job per worker slot
- maintenance: beat-driven housekeeping (stalled job reaping)

Worker concurrency is MAX_CONCURRENCY with prefetch disabled, so jobs
beyond the ceiling wait in the broker and stay `queued` in the job store
until a slot frees.

Run:
    celery -A site_audit.workers.celery_app worker -Q audit_queue,maintenance
    celery -A site_audit.workers.celery_app beat
"""

import structlog
from celery import Celery
from celery.signals import after_setup_logger, worker_ready
from kombu import Exchange, Queue

from site_audit.core.config import get_settings

settings = get_settings()

AUDIT_TASK = "site_audit.workers.audit_tasks.process_audit_job"
REAP_TASK = "site_audit.workers.audit_tasks.reap_stalled_jobs"

celery_app = Celery(
    "site_audit",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["site_audit.workers.audit_tasks"],
)

# ─────────────────────────────────────────────
# Routing
# ─────────────────────────────────────────────

celery_app.conf.task_queues = (
    Queue("audit_queue", Exchange("audit", type="direct"), routing_key="audit"),
    Queue("maintenance", Exchange("maintenance", type="direct"), routing_key="maintenance"),
)
celery_app.conf.task_default_queue = "audit_queue"
celery_app.conf.task_routes = {
    AUDIT_TASK: {"queue": "audit_queue", "routing_key": "audit"},
    REAP_TASK: {"queue": "maintenance", "routing_key": "maintenance"},
}

# ─────────────────────────────────────────────
# Execution
# ─────────────────────────────────────────────

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",

    # Admission control: never reserve more jobs than there are slots
    worker_concurrency=settings.MAX_CONCURRENCY,
    worker_prefetch_multiplier=1,

    # A job lost with its worker is redelivered; the store ignores the
    # redelivery once the job has left `queued`
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

    # Reports live in the job store, not the result backend
    task_ignore_result=True,
    result_expires=3600,

    worker_send_task_events=True,
    broker_connection_retry_on_startup=True,

    beat_schedule={
        "reap-stalled-jobs": {
            "task": REAP_TASK,
            "schedule": max(60.0, settings.JOB_STALL_TIMEOUT / 2),
        },
    },
)


@worker_ready.connect
def log_worker_ready(sender, **kwargs):
    structlog.get_logger("site_audit.worker").info(
        "Audit worker ready",
        hostname=sender.hostname,
        concurrency=settings.MAX_CONCURRENCY,
        stall_timeout=settings.JOB_STALL_TIMEOUT,
    )


@after_setup_logger.connect
def use_structured_logging(logger, *args, **kwargs):
    from site_audit.core.logging import configure_logging
    configure_logging()
