"""Dry-run estimation: how many records a cleanup would touch right now."""

import logging
from typing import Union

from .exceptions import InvalidScopeError
from .ports import RecordStorePort
from .rules import compute_cutoff, resolve_days
from .schemas import (
    EstimateResult,
    EstimateScope,
    FileDisposition,
    RecordDisposition,
    RetentionSettings,
)

logger = logging.getLogger(__name__)


class DryRunEstimator:
    """Counts overdue records without mutating anything.

    Uses the same rule resolution and selection as BatchEraser, so the
    count matches what one complete cleanup would process.
    """

    def __init__(self, store: RecordStorePort):
        self.store = store

    def estimate(
        self,
        settings: RetentionSettings,
        scope: Union[EstimateScope, str] = EstimateScope.RECORDS,
    ) -> EstimateResult:
        """Count matching records for ``scope``.

        Args:
            settings: Retention rules
            scope: ``records`` (all overdue records) or ``files`` (overdue
                records holding at least one file reference)

        Returns:
            EstimateResult with the total and its active/trashed breakdown

        Raises:
            InvalidScopeError: Unknown scope
        """
        try:
            scope = EstimateScope(scope)
        except ValueError:
            raise InvalidScopeError(str(scope))

        result = EstimateResult(scope=scope)

        if scope == EstimateScope.RECORDS and settings.record_disposition == RecordDisposition.KEEP:
            return result
        if scope == EstimateScope.FILES and settings.file_disposition == FileDisposition.KEEP:
            return result

        include_trash = settings.record_disposition == RecordDisposition.HARD_DELETE
        require_files = scope == EstimateScope.FILES
        now = self.store.now()

        for category in self.store.list_categories():
            days = resolve_days(settings, category.id)
            if days is None:
                continue

            if require_files and not self.store.list_file_fields(category.id):
                continue

            cutoff = compute_cutoff(now, days)

            active = self.store.count_overdue_records(
                category.id, cutoff, include_trash=False, require_files=require_files
            )
            result.active += active

            if include_trash:
                # The store counts active + trashed when trash is included
                total = self.store.count_overdue_records(
                    category.id, cutoff, include_trash=True, require_files=require_files
                )
                result.trashed += max(0, total - active)

        result.count = result.active + result.trashed

        logger.info(
            f"Dry run ({scope.value}): {result.count} record(s) would be affected",
            extra={"active": result.active, "trashed": result.trashed},
        )
        return result
