"""Daily schedule computation and the Celery beat entry."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from celery.schedules import crontab

from .schemas import RetentionSettings

CLEANUP_TASK_NAME = "retention.cleanup"


def next_scheduled_run(settings: RetentionSettings, now: datetime) -> Optional[datetime]:
    """Next occurrence of ``schedule_hour`` (host time zone), or None when disabled.

    Today's slot is used while it is still ahead; otherwise tomorrow's.
    """
    if not settings.schedule_enabled:
        return None

    target = now.replace(hour=settings.schedule_hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target = target + timedelta(days=1)
    return target


def build_beat_schedule(settings: RetentionSettings) -> Dict[str, Any]:
    """Celery beat entries for the daily cleanup.

    The entry is registered even while scheduling is disabled; the task
    itself records a skipped run so the history shows the schedule fired.
    """
    return {
        "retention-cleanup-daily": {
            "task": CLEANUP_TASK_NAME,
            "schedule": crontab(hour=settings.schedule_hour, minute=0),
            "options": {
                "expires": 3600,  # Task expires after 1 hour if not picked up
            },
        },
    }
