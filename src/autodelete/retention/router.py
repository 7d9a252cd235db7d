"""FastAPI router for retention management endpoints.

Provides admin APIs for:
- Running one cleanup invocation (clients poll while has_more is true)
- Enqueuing a drained cleanup on the worker
- Dry-run estimates
- Browsing and clearing the log and run history
- Force-deleting a single record
- Person search and deleting the records it finds
- Viewing the active settings and the next scheduled run

Access control is the host's concern; mount this router behind it.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_retention_service
from .exceptions import InvalidScopeError, InvalidSearchError, RecordNotFoundError
from .schemas import (
    BatchDeleteRequest,
    BatchDeleteResult,
    CleanupResult,
    EstimateResult,
    LogPage,
    RetentionSettings,
    RetryDeleteResult,
    RunPage,
    ScheduleInfo,
    SearchPage,
)
from .search import MAX_SEARCH_PER_PAGE, SEARCH_PER_PAGE
from .service import RetentionService
from .tasks import retention_cleanup_manual_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/retention", tags=["retention"])


@router.post("/run", response_model=CleanupResult)
def run_cleanup(
    service: RetentionService = Depends(get_retention_service),
) -> CleanupResult:
    """Execute one time-boxed manual cleanup invocation.

    Record-level failures are reported inside the result (status, errors);
    only a run that cannot be started at all fails the request.

    Returns:
        CleanupResult: Counters of this invocation; call again while has_more is true
    """
    result = service.run_manual()

    logger.info(
        f"Manual cleanup run {result.run_id} finished with {result.status.value}",
        extra={"processed": result.processed, "has_more": result.has_more},
    )

    return result


@router.post("/cleanup", response_model=Dict[str, Any], status_code=status.HTTP_202_ACCEPTED)
def enqueue_cleanup() -> Dict[str, Any]:
    """Enqueue a cleanup that the worker repeats until no work remains.

    Returns:
        Dict with:
        - status: "enqueued"
        - task_id: Celery task ID for status checking
    """
    task = retention_cleanup_manual_task.delay()

    logger.info("Manual retention cleanup enqueued", extra={"task_id": task.id})

    return {
        'status': 'enqueued',
        'task_id': task.id,
    }


@router.get("/estimate", response_model=EstimateResult)
def estimate_cleanup(
    scope: str = Query("records", description="records or files"),
    service: RetentionService = Depends(get_retention_service),
) -> EstimateResult:
    """Count what a cleanup would touch right now, without changing anything.

    Raises:
        HTTPException 422: Unknown scope
    """
    try:
        return service.estimate(scope)
    except InvalidScopeError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


@router.get("/logs", response_model=LogPage)
def list_logs(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    order_by: str = Query("time"),
    order: str = Query("desc", description="asc or desc"),
    service: RetentionService = Depends(get_retention_service),
) -> LogPage:
    """Paginated log entries; unknown sort columns fall back to time."""
    return service.list_logs(page=page, per_page=per_page, order_by=order_by, order=order)


@router.delete("/logs", status_code=status.HTTP_204_NO_CONTENT)
def clear_logs(
    service: RetentionService = Depends(get_retention_service),
) -> None:
    """Delete the whole log and run history."""
    service.clear_logs()
    logger.info("Retention history cleared via API")


@router.get("/runs", response_model=RunPage)
def list_runs(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    service: RetentionService = Depends(get_retention_service),
) -> RunPage:
    """Paginated run history, newest first."""
    return service.list_runs(page=page, per_page=per_page)


@router.get("/search", response_model=SearchPage)
def search_records(
    term: str = Query(..., description="Text to find in any field value"),
    page: int = Query(1, ge=1),
    per_page: int = Query(SEARCH_PER_PAGE, ge=1, le=MAX_SEARCH_PER_PAGE),
    service: RetentionService = Depends(get_retention_service),
) -> SearchPage:
    """Find non-trashed records holding ``term``, newest first.

    Raises:
        HTTPException 422: Term too short or too many matching records
    """
    try:
        return service.search(term, page=page, per_page=per_page)
    except InvalidSearchError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


@router.post("/records/delete", response_model=BatchDeleteResult)
def delete_records(
    request: BatchDeleteRequest,
    service: RetentionService = Depends(get_retention_service),
) -> BatchDeleteResult:
    """Permanently delete the selected records and their files.

    Unknown ids are skipped; per-record failures are counted, not raised.
    """
    result = service.delete_records(request.record_ids)

    logger.info(
        f"Batch delete of {len(request.record_ids)} record(s) via API",
        extra={"deleted": result.deleted, "failed": result.failed},
    )

    return result


@router.post("/records/{record_id}/delete", response_model=RetryDeleteResult)
def retry_delete(
    record_id: int,
    service: RetentionService = Depends(get_retention_service),
) -> RetryDeleteResult:
    """Permanently delete one record and its files, ignoring retention rules.

    Raises:
        HTTPException 404: Record not found
    """
    try:
        return service.retry_delete(record_id)
    except RecordNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )


@router.get("/settings", response_model=RetentionSettings)
def read_settings(
    service: RetentionService = Depends(get_retention_service),
) -> RetentionSettings:
    """Retention rules currently in effect."""
    return service.settings


@router.get("/schedule", response_model=ScheduleInfo)
def read_schedule(
    service: RetentionService = Depends(get_retention_service),
) -> ScheduleInfo:
    """Whether the daily run is active and when it fires next."""
    return service.schedule_info()
