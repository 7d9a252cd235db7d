"""Celery application for the retention worker and beat scheduler.

Start with:
    celery -A autodelete.celery_app worker --loglevel=info
    celery -A autodelete.celery_app beat
"""

import logging

from celery import Celery

from .config import get_settings
from .observability.logging_config import configure_logging
from .retention.schedule import build_beat_schedule
from .retention.service import load_retention_settings

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

celery_app = Celery(
    "autodelete",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["autodelete.retention.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Beat evaluates crontab entries in the host time zone
    timezone=settings.TIMEZONE,
    enable_utc=True,
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
)

celery_app.conf.beat_schedule = build_beat_schedule(load_retention_settings())

logger.info(
    "Celery app configured",
    extra={"timezone": settings.TIMEZONE, "beat_entries": list(celery_app.conf.beat_schedule)},
)
