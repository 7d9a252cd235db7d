"""Celery tasks for retention cleanup.

Tasks:
- retention_cleanup_task: Daily job fired by Celery Beat at ``schedule_hour``
- retention_cleanup_manual_task: Operator-triggered cleanup, drained until done

Both tasks are idempotent and never raise; failures come back as a
``{'status': 'failed'}`` payload.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from ..database import SessionLocal
from .schedule import CLEANUP_TASK_NAME
from .schemas import CleanupResult
from .service import DEFAULT_MAX_INVOCATIONS, RetentionService, load_retention_settings
from .sql_store import SqlRecordStore

logger = logging.getLogger(__name__)


def _result_payload(result: CleanupResult) -> Dict[str, Any]:
    payload = result.model_dump(mode="json")
    payload["run_status"] = payload.pop("status")
    return {"status": "completed", **payload}


@shared_task(name=CLEANUP_TASK_NAME, bind=True)
def retention_cleanup_task(self) -> Dict[str, Any]:
    """Execute one scheduled cleanup invocation.

    A scheduled run that hits the time limit is not re-queued; the next
    daily run resumes where it stopped.

    Returns:
        Dict with:
        - status: "completed" or "failed"
        - run_id, run_status, processed, files_deleted, errors, warnings, has_more
    """
    logger.info("Retention cleanup task started")

    db = SessionLocal()
    try:
        service = RetentionService(db=db, store=SqlRecordStore(db), settings=load_retention_settings())
        result = _result_payload(service.run_scheduled())

        logger.info("Retention cleanup task completed", extra=result)
        return result

    except Exception as e:
        logger.error(
            "Retention cleanup task failed",
            exc_info=True,
            extra={"error": str(e)}
        )

        # Return error status but don't raise (allow task to complete)
        return {
            'status': 'failed',
            'error': str(e),
            'processed': 0,
        }

    finally:
        db.close()


@shared_task(name="retention.cleanup_manual", bind=True)
def retention_cleanup_manual_task(self, max_invocations: int = DEFAULT_MAX_INVOCATIONS) -> Dict[str, Any]:
    """Run manual invocations back to back until no work remains.

    Args:
        max_invocations: Safety cap on the number of invocations

    Returns:
        Dict with the summed counters of all invocations and the id and
        status of the last run
    """
    logger.info(f"Manual retention cleanup task started (max {max_invocations} invocations)")

    db = SessionLocal()
    try:
        service = RetentionService(db=db, store=SqlRecordStore(db), settings=load_retention_settings())
        results = service.drain(max_invocations=max_invocations)
        last = results[-1]

        summary = {
            'status': 'completed',
            'invocations': len(results),
            'run_id': last.run_id,
            'run_status': last.status.value,
            'processed': sum(r.processed for r in results),
            'files_deleted': sum(r.files_deleted for r in results),
            'errors': sum(r.errors for r in results),
            'warnings': sum(r.warnings for r in results),
            'has_more': last.has_more,
        }

        logger.info("Manual retention cleanup task completed", extra=summary)
        return summary

    except Exception as e:
        logger.error(
            "Manual retention cleanup task failed",
            exc_info=True,
            extra={"error": str(e)}
        )

        return {
            'status': 'failed',
            'error': str(e),
            'processed': 0,
        }

    finally:
        db.close()
