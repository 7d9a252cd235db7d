"""Audit bookkeeping for cleanup runs.

Owns the ``retention_run`` and ``retention_log`` tables: opens and closes
runs, appends one entry per processed record and prunes both tables in bulk.
Every write is committed immediately so a crash mid-run leaves a consistent
history behind.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session
from sqlalchemy import func

from ..config import get_settings
from ..models.audit_log import (
    LogAction,
    LogStatus,
    RetentionLogEntry,
    RetentionRun,
    RunStatus,
    RunTrigger,
)
from .schemas import MIN_LOG_LIMIT

logger = logging.getLogger(__name__)

# Runs still RUNNING after this long are treated as crashed
STALE_RUN_AGE = timedelta(hours=1)

RUN_HISTORY_LIMIT = 50

TIMEOUT_MARKER = " [Timeout]"

UNKNOWN_CATEGORY_LABEL = "unknown"

# Columns the log listing may be sorted by
LOG_SORT_COLUMNS = {
    "id": RetentionLogEntry.id,
    "time": RetentionLogEntry.time,
    "category_id": RetentionLogEntry.category_id,
    "category_label": RetentionLogEntry.category_label,
    "record_id": RetentionLogEntry.record_id,
    "record_created_at": RetentionLogEntry.record_created_at,
    "status": RetentionLogEntry.status,
}


def _default_clock() -> datetime:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE))


class RunLogger:
    """Run and log-entry persistence.

    Args:
        db: Session bound to the database holding the audit tables
        clock: Returns the authoritative current time (host time zone)
        label_resolver: Optional ``category_id -> label`` lookup used when the
            caller does not pass a label
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Callable[[], datetime]] = None,
        label_resolver: Optional[Callable[[int], Optional[str]]] = None,
    ):
        self.db = db
        self.clock = clock or _default_clock
        self.label_resolver = label_resolver

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def start_run(self, message: str, trigger: RunTrigger = RunTrigger.MANUAL) -> int:
        """Reclaim crashed runs, then open a new RUNNING run.

        Returns:
            int: Id of the new run
        """
        now = self.clock()
        reclaimed = self.reclaim_stale_runs(now)
        if reclaimed:
            logger.warning(
                f"Marked {reclaimed} stale run(s) as timed out",
                extra={"reclaimed_runs": reclaimed},
            )

        run = RetentionRun(
            time=now,
            status=RunStatus.RUNNING,
            trigger=RunTrigger(trigger).value,
            message=message,
        )
        self.db.add(run)
        self.db.commit()

        logger.info(
            f"Cleanup run {run.id} started",
            extra={"trigger": run.trigger},
        )
        return run.id

    def reclaim_stale_runs(self, now: Optional[datetime] = None) -> int:
        """Force runs left RUNNING for over an hour to ERROR with a timeout marker."""
        now = now or self.clock()
        threshold = now - STALE_RUN_AGE

        updated = (
            self.db.query(RetentionRun)
            .filter(
                RetentionRun.status == RunStatus.RUNNING,
                RetentionRun.time < threshold,
            )
            .update(
                {
                    RetentionRun.status: RunStatus.ERROR,
                    RetentionRun.message: func.coalesce(RetentionRun.message, "") + TIMEOUT_MARKER,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated

    def finish_run(self, run_id: int, status: RunStatus, message: str) -> None:
        """Move a run to its terminal status, then prune the run history."""
        if status == RunStatus.RUNNING:
            raise ValueError("finish_run requires a terminal status")

        run = self.db.get(RetentionRun, run_id)
        if run is None:
            logger.warning(f"Cannot finish unknown run {run_id}")
            return

        if run.is_complete:
            logger.warning(
                f"Run {run_id} already finished with status {run.status.value}",
                extra={"requested_status": status.value},
            )
            return

        run.status = status
        run.message = message
        self.db.commit()

        logger.info(
            f"Cleanup run {run_id} finished: {message}",
            extra={"status": status.value},
        )

        self.prune_runs(RUN_HISTORY_LIMIT)

    def has_active_run(self, before_id: Optional[int] = None) -> bool:
        """Whether a run younger than the stale threshold is still RUNNING.

        With ``before_id`` only runs started ahead of that run count, so of two
        runs racing past the check the older one proceeds and the newer skips.
        """
        threshold = self.clock() - STALE_RUN_AGE
        query = self.db.query(RetentionRun.id).filter(
            RetentionRun.status == RunStatus.RUNNING,
            RetentionRun.time >= threshold,
        )
        if before_id is not None:
            query = query.filter(RetentionRun.id < before_id)
        return query.first() is not None

    def get_run(self, run_id: int) -> Optional[RetentionRun]:
        return self.db.get(RetentionRun, run_id)

    def list_runs(self, page: int = 1, per_page: int = 20) -> List[RetentionRun]:
        """Newest runs first."""
        return (
            self.db.query(RetentionRun)
            .order_by(RetentionRun.id.desc())
            .offset((max(1, page) - 1) * per_page)
            .limit(per_page)
            .all()
        )

    def count_runs(self) -> int:
        return self.db.query(func.count(RetentionRun.id)).scalar() or 0

    # ------------------------------------------------------------------
    # Log entries
    # ------------------------------------------------------------------

    def log(
        self,
        category_id: int,
        record_id: int,
        record_created_at: Optional[datetime],
        status: LogStatus,
        message: str,
        actions: Iterable[LogAction] = (),
        category_label: Optional[str] = None,
    ) -> RetentionLogEntry:
        """Append one audit entry for a processed record."""
        entry = RetentionLogEntry(
            time=self.clock(),
            category_id=category_id,
            category_label=category_label or self._resolve_label(category_id),
            record_id=record_id,
            record_created_at=record_created_at,
            status=status,
            message=message,
            actions=[LogAction(action).value for action in actions],
        )
        self.db.add(entry)
        self.db.commit()
        return entry

    def list_logs(
        self,
        page: int = 1,
        per_page: int = 20,
        order_by: str = "time",
        order: str = "desc",
    ) -> List[RetentionLogEntry]:
        """One page of log entries.

        Unknown ``order_by`` columns fall back to ``time``; anything other
        than ``asc`` sorts descending. Ties are broken by id.
        """
        column = LOG_SORT_COLUMNS.get(order_by, RetentionLogEntry.time)
        ascending = str(order).lower() == "asc"

        if ascending:
            ordering = (column.asc(), RetentionLogEntry.id.asc())
        else:
            ordering = (column.desc(), RetentionLogEntry.id.desc())

        return (
            self.db.query(RetentionLogEntry)
            .order_by(*ordering)
            .offset((max(1, page) - 1) * per_page)
            .limit(per_page)
            .all()
        )

    def count_logs(self) -> int:
        return self.db.query(func.count(RetentionLogEntry.id)).scalar() or 0

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def prune_logs(self, keep: int) -> int:
        """Keep only the newest ``keep`` entries (at least MIN_LOG_LIMIT).

        Returns:
            int: Number of deleted entries
        """
        keep = max(MIN_LOG_LIMIT, int(keep))

        threshold_id = (
            self.db.query(RetentionLogEntry.id)
            .order_by(RetentionLogEntry.id.desc())
            .offset(keep)
            .limit(1)
            .scalar()
        )
        if threshold_id is None:
            return 0

        deleted = (
            self.db.query(RetentionLogEntry)
            .filter(RetentionLogEntry.id <= threshold_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()

        logger.debug(f"Pruned {deleted} log entries", extra={"keep": keep})
        return deleted

    def prune_runs(self, keep: int = RUN_HISTORY_LIMIT) -> int:
        """Keep only the newest ``keep`` finished runs; RUNNING rows are never pruned."""
        keep = max(MIN_LOG_LIMIT, int(keep))

        threshold_id = (
            self.db.query(RetentionRun.id)
            .filter(RetentionRun.status != RunStatus.RUNNING)
            .order_by(RetentionRun.id.desc())
            .offset(keep)
            .limit(1)
            .scalar()
        )
        if threshold_id is None:
            return 0

        deleted = (
            self.db.query(RetentionRun)
            .filter(
                RetentionRun.id <= threshold_id,
                RetentionRun.status != RunStatus.RUNNING,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def truncate(self) -> None:
        """Remove every log entry and run."""
        logs = self.db.query(RetentionLogEntry).delete(synchronize_session=False)
        runs = self.db.query(RetentionRun).delete(synchronize_session=False)
        self.db.commit()

        logger.info(
            "Cleared retention log and run history",
            extra={"deleted_logs": logs, "deleted_runs": runs},
        )

    def _resolve_label(self, category_id: int) -> str:
        if self.label_resolver is None:
            return UNKNOWN_CATEGORY_LABEL
        try:
            label = self.label_resolver(category_id)
        except Exception:
            logger.warning(
                f"Could not resolve label of category {category_id}",
                exc_info=True,
            )
            return UNKNOWN_CATEGORY_LABEL
        return label or UNKNOWN_CATEGORY_LABEL
