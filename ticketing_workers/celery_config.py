"""
Celery configuration for ticketing workers.
Broker and result backend come from the same config source as the API.
"""

import asyncio
import logging

from celery import Celery

from ticketing.core.config import TicketingConfig

logger = logging.getLogger(__name__)

EMAIL_QUEUE = 'email_notifications'

CELERY_ROUTES = {
    'ticketing_workers.tasks.*': {'queue': EMAIL_QUEUE},
}

# Task serialization
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']

# Task time limits
CELERY_TASK_TIME_LIMIT = 300
CELERY_TASK_SOFT_TIME_LIMIT = 240

# Worker configuration
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ACKS_LATE = True

# Retry policy for the email tasks
EMAIL_MAX_RETRIES = 3
EMAIL_RETRY_DELAY = 60


def _with_ssl_params(redis_url: str) -> str:
    """Certificate checks are relaxed for managed TLS Redis endpoints."""
    if redis_url.startswith("rediss://"):
        return redis_url + "?ssl_cert_reqs=CERT_NONE"
    return redis_url


def create_celery_app() -> Celery:
    """Create and configure the Celery app for ticketing email workers."""
    worker_config = TicketingConfig()
    redis_url = _with_ssl_params(asyncio.run(worker_config.get_redis_url()))

    celery_app = Celery(
        'ticketing_workers',
        broker=redis_url,
        backend=redis_url,
        include=['ticketing_workers.tasks'],
    )

    celery_app.conf.update(
        task_track_started=True,
        task_serializer=CELERY_TASK_SERIALIZER,
        result_serializer=CELERY_RESULT_SERIALIZER,
        accept_content=CELERY_ACCEPT_CONTENT,
        timezone='UTC',
        enable_utc=True,
        worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
        worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(task_name)s[%(task_id)s]: %(message)s",
        broker_connection_retry_on_startup=True,
        result_expires=3600,
        task_acks_late=CELERY_TASK_ACKS_LATE,
        worker_prefetch_multiplier=CELERY_WORKER_PREFETCH_MULTIPLIER,
        task_time_limit=CELERY_TASK_TIME_LIMIT,
        task_soft_time_limit=CELERY_TASK_SOFT_TIME_LIMIT,
        task_routes=CELERY_ROUTES,
    )

    logger.info("Celery app created for ticketing workers")
    return celery_app
