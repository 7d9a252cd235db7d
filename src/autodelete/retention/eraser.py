"""Time-boxed, multi-pass batch cleanup of overdue records.

One call to ``BatchEraser.run`` is one run: it opens a run row, processes
categories in passes of at most BATCH_LIMIT records each until a pass finds
nothing left or the TIME_LIMIT budget is spent, then closes the run with a
terminal status. Callers re-invoke while ``has_more`` is true.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from ..models.audit_log import LogAction, LogStatus, RunStatus, RunTrigger
from ..observability import metrics
from ..observability.run_context import run_context
from .file_deleter import FileDeleter
from .ports import CategoryInfo, RecordStorePort, RetentionRecord
from .rules import compute_cutoff, resolve_days
from .run_logger import RunLogger
from .schemas import (
    CleanupResult,
    FileCleanupStats,
    FileDisposition,
    RecordDisposition,
    RetentionSettings,
)

logger = logging.getLogger(__name__)

# Records fetched per category per pass
BATCH_LIMIT = 50

# Wall-clock budget per invocation, in seconds
TIME_LIMIT = 20

SKIP_SCHEDULE_DISABLED = "Skipped: scheduled cleanup is disabled"
SKIP_NOTHING_TO_DO = "Skipped: records and files are both kept"
SKIP_LOCKED = "Skipped: another cleanup run is in progress"


class BatchEraser:
    """Executes cleanup runs against a RecordStorePort.

    Args:
        store: Host datastore
        run_logger: Run and log-entry persistence
        file_deleter: Sandboxed file deletion
        batch_limit: Records per category per pass
        time_limit: Seconds after which no further category is started
        timer: Monotonic clock, replaceable in tests
    """

    def __init__(
        self,
        store: RecordStorePort,
        run_logger: RunLogger,
        file_deleter: FileDeleter,
        batch_limit: int = BATCH_LIMIT,
        time_limit: float = TIME_LIMIT,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.run_logger = run_logger
        self.file_deleter = file_deleter
        self.batch_limit = batch_limit
        self.time_limit = time_limit
        self.timer = timer

    def run(
        self,
        settings: RetentionSettings,
        trigger: RunTrigger = RunTrigger.MANUAL,
    ) -> CleanupResult:
        """Execute one invocation.

        Only a failure to open the run propagates; everything after that is
        captured in the run's status and the returned result.
        """
        trigger = RunTrigger(trigger)
        started = self.timer()

        run_id = self.run_logger.start_run(f"{trigger.value.capitalize()} cleanup started", trigger)
        result = CleanupResult(run_id=run_id)

        with run_context(run_id):
            skip_reason = self._skip_reason(settings, trigger, run_id)
            if skip_reason:
                result.status = RunStatus.SKIPPED
                self.run_logger.finish_run(run_id, RunStatus.SKIPPED, skip_reason)
                logger.info(skip_reason, extra={"trigger": trigger.value})
                self._observe_run(trigger, result, started)
                return result

            try:
                self._run_passes(settings, result, started)
            except Exception as e:
                logger.error(
                    f"Cleanup run {run_id} aborted",
                    exc_info=True,
                    extra={"error": str(e), "processed": result.processed},
                )
                result.status = RunStatus.ERROR
                message = f"Aborted after {result.processed} records: {e}"
            else:
                result.status = self._final_status(result)
                message = self._summary(result)

            self.run_logger.finish_run(run_id, result.status, message)
            self.run_logger.prune_logs(settings.log_limit)

        self._observe_run(trigger, result, started)
        return result

    def _skip_reason(
        self,
        settings: RetentionSettings,
        trigger: RunTrigger,
        run_id: int,
    ) -> Optional[str]:
        if trigger == RunTrigger.SCHEDULED and not settings.schedule_enabled:
            return SKIP_SCHEDULE_DISABLED
        if settings.is_noop:
            return SKIP_NOTHING_TO_DO
        if self.run_logger.has_active_run(before_id=run_id):
            return SKIP_LOCKED
        return None

    def _run_passes(
        self,
        settings: RetentionSettings,
        result: CleanupResult,
        started: float,
    ) -> None:
        include_trash = settings.record_disposition == RecordDisposition.HARD_DELETE
        require_files = (
            settings.record_disposition == RecordDisposition.KEEP
            and settings.file_disposition == FileDisposition.DELETE
        )

        # Per-run memo of file-bearing field keys by category
        field_keys: Dict[int, List[str]] = {}
        seen: Dict[int, Set[int]] = {}

        categories = self.store.list_categories()
        now = self.store.now()

        pass_number = 0
        while True:
            pass_number += 1
            pass_processed = 0

            for category in categories:
                days = resolve_days(settings, category.id)
                if days is None:
                    continue

                cutoff = compute_cutoff(now, days)
                pass_processed += self._process_category(
                    settings,
                    category,
                    cutoff,
                    include_trash,
                    require_files,
                    field_keys,
                    seen.setdefault(category.id, set()),
                    result,
                )

                if self.timer() - started >= self.time_limit:
                    result.has_more = True
                    logger.info(
                        f"Time limit of {self.time_limit}s reached, stopping",
                        extra={"pass": pass_number, "processed": result.processed},
                    )
                    return

            logger.debug(
                f"Pass {pass_number} processed {pass_processed} record(s)",
                extra={"pass": pass_number},
            )
            if pass_processed == 0:
                return

    def _process_category(
        self,
        settings: RetentionSettings,
        category: CategoryInfo,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
        field_keys: Dict[int, List[str]],
        seen: Set[int],
        result: CleanupResult,
    ) -> int:
        """Process one batch of a category; returns records handled."""
        # Over-fetch by the records this run already handled so they cannot
        # crowd out unprocessed ones
        candidates = self.store.query_overdue_records(
            category.id,
            cutoff,
            include_trash=include_trash,
            require_files=require_files,
            limit=self.batch_limit + len(seen),
        )
        batch = [record for record in candidates if record.id not in seen][: self.batch_limit]
        if not batch:
            return 0

        if settings.file_disposition == FileDisposition.DELETE and category.id not in field_keys:
            field_keys[category.id] = self.store.list_file_fields(category.id)

        for record in batch:
            seen.add(record.id)
            status = self._handle_record(
                settings, category, record, field_keys.get(category.id, []), result
            )
            result.processed += 1
            if status == LogStatus.ERROR:
                result.errors += 1
            elif status == LogStatus.WARNING:
                result.warnings += 1
            metrics.records_processed_total.labels(status=status.value).inc()

        return len(batch)

    def _handle_record(
        self,
        settings: RetentionSettings,
        category: CategoryInfo,
        record: RetentionRecord,
        file_fields: List[str],
        result: CleanupResult,
    ) -> LogStatus:
        try:
            status, message, actions, files = self._process_record(settings, record, file_fields)
        except Exception as e:
            logger.error(
                f"Processing record {record.id} failed",
                exc_info=True,
                extra={"record_id": record.id, "category_id": category.id},
            )
            status, message, actions = LogStatus.ERROR, f"Processing failed: {e}", []
        else:
            result.files_deleted += files.deleted

        self.run_logger.log(
            category_id=category.id,
            record_id=record.id,
            record_created_at=record.created_at,
            status=status,
            message=message,
            actions=actions,
            category_label=category.label,
        )
        return status

    def _process_record(
        self,
        settings: RetentionSettings,
        record: RetentionRecord,
        file_fields: List[str],
    ):
        """Apply the configured dispositions to one record.

        Files go first so a hard delete never orphans them.

        Returns:
            (status, message, actions, file stats)
        """
        disposition = settings.record_disposition
        status = LogStatus.SUCCESS
        actions: List[LogAction] = []
        parts: List[str] = []

        files = FileCleanupStats()
        if settings.file_disposition == FileDisposition.DELETE and file_fields:
            files = self.file_deleter.cleanup_files(self.store, record, file_fields)
            metrics.files_deleted_total.inc(files.deleted)
            metrics.file_errors_total.inc(files.errors)

        if disposition == RecordDisposition.HARD_DELETE:
            if self.store.hard_delete(record.id):
                actions.append(LogAction.DELETE)
                parts.append("Record deleted permanently")
            else:
                status = LogStatus.ERROR
                parts.append("Permanent deletion failed")

        elif disposition == RecordDisposition.SOFT_DELETE:
            if record.is_trashed:
                parts.append("Record already in trash")
            elif self.store.soft_delete(record.id):
                actions.append(LogAction.TRASH)
                parts.append("Record moved to trash")
            else:
                status = LogStatus.ERROR
                parts.append("Moving record to trash failed")

        if files.deleted:
            actions.append(LogAction.FILES)
            parts.append(f"{files.deleted} file(s) deleted")

        if files.errors:
            actions.append(LogAction.WARNING)
            parts.append(f"{files.errors} file(s) could not be deleted")
            if status != LogStatus.ERROR:
                status = LogStatus.WARNING

        if not parts:
            actions.append(LogAction.SKIP)
            parts.append("No action applied")
            status = LogStatus.SKIPPED

        return status, ". ".join(parts), actions, files

    @staticmethod
    def _final_status(result: CleanupResult) -> RunStatus:
        if result.errors:
            return RunStatus.ERROR
        if result.warnings:
            return RunStatus.WARNING
        return RunStatus.SUCCESS

    @staticmethod
    def _summary(result: CleanupResult) -> str:
        counts = f"{result.processed} records processed, {result.files_deleted} files deleted"
        if result.has_more:
            message = f"Partial ({counts}). Continue to process the remaining records."
        else:
            message = f"Done. {counts}."
        if result.errors or result.warnings:
            message += f" ({result.errors} errors, {result.warnings} warnings)"
        return message

    def _observe_run(self, trigger: RunTrigger, result: CleanupResult, started_at: float) -> None:
        metrics.runs_total.labels(trigger=trigger.value, status=result.status.value).inc()
        metrics.run_duration_seconds.labels(trigger=trigger.value).observe(
            max(0.0, self.timer() - started_at)
        )
