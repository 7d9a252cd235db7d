"""Retention service: host-facing entry points of the cleanup engine.

Wires the RecordStorePort, RunLogger, FileDeleter, BatchEraser and
DryRunEstimator together for one settings snapshot and exposes:
- run_scheduled / run_manual: one time-boxed invocation each
- drain: repeat manual invocations until no work is left
- estimate: dry-run count
- retry_delete: force-delete a single record and its files
- search / delete_records: person search and deletion of what it found
- list_logs / list_runs / clear_logs: audit history
- next_run_at / schedule_info: schedule preview

All cleanup operations are idempotent and can be safely retried.
"""

import json
import logging
import time
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.audit_log import LogAction, LogStatus, RunStatus, RunTrigger
from .eraser import BATCH_LIMIT, TIME_LIMIT, BatchEraser
from .estimator import DryRunEstimator
from .exceptions import RecordNotFoundError, RetentionError
from .file_deleter import FileDeleter
from .ports import RecordStorePort, RetentionRecord
from .run_logger import RunLogger
from .schedule import next_scheduled_run
from .search import SEARCH_PER_PAGE, RecordSearch
from .schemas import (
    BatchDeleteResult,
    CleanupResult,
    EstimateResult,
    EstimateScope,
    FileCleanupStats,
    LogEntryOut,
    LogPage,
    RetentionSettings,
    RetryDeleteResult,
    RunOut,
    RunPage,
    ScheduleInfo,
    SearchPage,
)

logger = logging.getLogger(__name__)

# Upper bound for server-side draining; each invocation is itself time-boxed
DEFAULT_MAX_INVOCATIONS = 100


def load_retention_settings(path: Optional[str] = None) -> RetentionSettings:
    """Load retention rules from the JSON settings document.

    Args:
        path: Document path; defaults to RETENTION_SETTINGS_FILE

    Returns:
        RetentionSettings: Parsed rules, or the defaults when no document is
        configured or it does not exist

    Raises:
        RetentionError: The document exists but is not valid
    """
    path = path or get_settings().RETENTION_SETTINGS_FILE
    if not path:
        return RetentionSettings()

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        logger.warning(
            f"Retention settings file {path} not found, using defaults",
            extra={"path": path},
        )
        return RetentionSettings()
    except (OSError, ValueError) as e:
        raise RetentionError(f"Cannot read retention settings from {path}: {e}") from e

    if not isinstance(raw, dict):
        raise RetentionError(f"Retention settings in {path} must be a JSON object")

    try:
        return RetentionSettings.from_stored(raw)
    except ValueError as e:
        raise RetentionError(f"Invalid retention settings in {path}: {e}") from e


class RetentionService:
    """Entry points of the retention engine for one settings snapshot.

    Args:
        db: Session bound to the database holding the audit tables
        store: Host datastore
        settings: Retention rules; loaded from RETENTION_SETTINGS_FILE when omitted
        file_deleter: Sandboxed deleter; built from UPLOAD_ROOT/UPLOAD_BASE_URL when omitted
        batch_limit: Records per category per pass
        time_limit: Seconds per invocation
        timer: Monotonic clock used for the time budget
    """

    def __init__(
        self,
        db: Session,
        store: RecordStorePort,
        settings: Optional[RetentionSettings] = None,
        file_deleter: Optional[FileDeleter] = None,
        batch_limit: int = BATCH_LIMIT,
        time_limit: float = TIME_LIMIT,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.store = store
        self.settings = settings if settings is not None else load_retention_settings()

        if file_deleter is None:
            app_settings = get_settings()
            file_deleter = FileDeleter(app_settings.UPLOAD_ROOT, app_settings.UPLOAD_BASE_URL)
        self.file_deleter = file_deleter

        self.run_logger = RunLogger(db, clock=store.now, label_resolver=store.category_label)
        self.eraser = BatchEraser(
            store,
            self.run_logger,
            file_deleter,
            batch_limit=batch_limit,
            time_limit=time_limit,
            timer=timer,
        )
        self.estimator = DryRunEstimator(store)
        self.record_search = RecordSearch(store)

    def run_scheduled(self) -> CleanupResult:
        """One invocation on behalf of the daily schedule."""
        return self.eraser.run(self.settings, RunTrigger.SCHEDULED)

    def run_manual(self) -> CleanupResult:
        """One invocation on behalf of an operator; re-invoke while has_more."""
        return self.eraser.run(self.settings, RunTrigger.MANUAL)

    def drain(self, max_invocations: int = DEFAULT_MAX_INVOCATIONS) -> List[CleanupResult]:
        """Invoke run_manual until no work remains.

        Stops early when a run is skipped. Returns every invocation's result
        in order.
        """
        results: List[CleanupResult] = []

        for _ in range(max(1, max_invocations)):
            result = self.run_manual()
            results.append(result)
            if not result.has_more or result.status == RunStatus.SKIPPED:
                break
        else:
            logger.warning(
                f"Drain stopped after {max_invocations} invocations with work remaining",
                extra={"processed": sum(r.processed for r in results)},
            )

        return results

    def estimate(self, scope: EstimateScope = EstimateScope.RECORDS) -> EstimateResult:
        """Dry-run count for ``scope``; nothing is modified."""
        return self.estimator.estimate(self.settings, scope)

    def retry_delete(self, record_id: int) -> RetryDeleteResult:
        """Force the permanent deletion of one record and its files.

        Ignores the configured dispositions and retention windows. The
        outcome is written to the log like any processed record.

        Raises:
            RecordNotFoundError: No record with this id
        """
        record = self.store.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)

        deleted, files, message = self._force_delete(record, "manual retry")

        return RetryDeleteResult(
            record_id=record.id,
            deleted=deleted,
            files_deleted=files.deleted,
            file_errors=files.errors,
            message=message,
        )

    def search(self, term: str, page: int = 1, per_page: int = SEARCH_PER_PAGE) -> SearchPage:
        """Person search over all categories; see RecordSearch.search."""
        return self.record_search.search(term, page, per_page)

    def delete_records(self, record_ids: Iterable[int]) -> BatchDeleteResult:
        """Permanently delete a selection of records and their files.

        Used after a person search. Ids that no longer exist are skipped. A
        record the store fails to delete counts as failed without stopping
        the batch.
        """
        result = BatchDeleteResult()

        for record_id in dict.fromkeys(record_ids):
            record = self.store.get_record(record_id)
            if record is None:
                logger.info(
                    f"Record {record_id} already gone, skipping",
                    extra={"record_id": record_id},
                )
                continue

            try:
                deleted, files, _ = self._force_delete(record, "person search")
            except Exception as e:
                logger.error(
                    f"Deleting record {record_id} failed",
                    exc_info=True,
                    extra={"record_id": record_id, "error": str(e)},
                )
                result.failed += 1
                continue

            result.files_deleted += files.deleted
            if deleted:
                result.deleted += 1
            else:
                result.failed += 1

        logger.info(
            "Batch delete finished",
            extra={
                "deleted": result.deleted,
                "failed": result.failed,
                "files_deleted": result.files_deleted,
            },
        )
        return result

    def _force_delete(
        self,
        record: RetentionRecord,
        source: str,
    ) -> Tuple[bool, FileCleanupStats, str]:
        """Delete files then the record, ignoring dispositions; always logged."""
        field_keys = self.store.list_file_fields(record.category_id)
        files = self.file_deleter.cleanup_files(self.store, record, field_keys)
        deleted = self.store.hard_delete(record.id)

        actions: List[LogAction] = [LogAction.MANUAL]
        if deleted:
            actions.append(LogAction.DELETE)
            message = f"Record deleted permanently ({source})"
            status = LogStatus.SUCCESS
        else:
            message = f"Permanent deletion failed ({source})"
            status = LogStatus.ERROR

        if files.deleted:
            actions.append(LogAction.FILES)
            message += f". {files.deleted} file(s) deleted"
        if files.errors:
            actions.append(LogAction.WARNING)
            message += f". {files.errors} file(s) could not be deleted"
            if status != LogStatus.ERROR:
                status = LogStatus.WARNING

        self.run_logger.log(
            category_id=record.category_id,
            record_id=record.id,
            record_created_at=record.created_at,
            status=status,
            message=message,
            actions=actions,
        )

        logger.info(
            f"Manual delete of record {record.id}: {status.value}",
            extra={"record_id": record.id, "files_deleted": files.deleted, "source": source},
        )
        return deleted, files, message

    def clear_logs(self) -> None:
        """Delete the whole log and run history."""
        self.run_logger.truncate()

    def list_logs(
        self,
        page: int = 1,
        per_page: int = 20,
        order_by: str = "time",
        order: str = "desc",
    ) -> LogPage:
        entries = self.run_logger.list_logs(page, per_page, order_by, order)
        return LogPage(
            total=self.run_logger.count_logs(),
            page=page,
            per_page=per_page,
            items=[LogEntryOut.model_validate(entry) for entry in entries],
        )

    def list_runs(self, page: int = 1, per_page: int = 20) -> RunPage:
        runs = self.run_logger.list_runs(page, per_page)
        return RunPage(
            total=self.run_logger.count_runs(),
            page=page,
            per_page=per_page,
            items=[RunOut.model_validate(run) for run in runs],
        )

    def next_run_at(self) -> Optional[datetime]:
        """Next scheduled run in host time, None while scheduling is disabled."""
        return next_scheduled_run(self.settings, self.store.now())

    def schedule_info(self) -> ScheduleInfo:
        return ScheduleInfo(
            enabled=self.settings.schedule_enabled,
            hour=self.settings.schedule_hour,
            timezone=get_settings().TIMEZONE,
            next_run_at=self.next_run_at(),
        )
