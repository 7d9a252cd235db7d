"""Pydantic schemas for retention settings, results and API payloads.

This module defines retention-related schemas:
- RetentionSettings: Process-wide rules supplied by the host per invocation
- CleanupResult: Summary returned by one engine invocation
- EstimateResult: Dry-run preview of what a cleanup would touch
- LogEntryOut / RunOut: Read models for the audit tables
- SearchPage / BatchDeleteResult: Person search and the deletions it leads to
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.audit_log import LogAction, LogStatus, RunStatus

DEFAULT_RETENTION_DAYS = 365
DEFAULT_LOG_LIMIT = 256
MIN_LOG_LIMIT = 10
MAX_BATCH_DELETE = 5000


class RecordDisposition(str, enum.Enum):
    """What happens to an overdue record."""
    KEEP = "keep"
    SOFT_DELETE = "soft_delete"
    HARD_DELETE = "hard_delete"


class FileDisposition(str, enum.Enum):
    """What happens to the files attached to an overdue record."""
    KEEP = "keep"
    DELETE = "delete"


class CategoryRuleMode(str, enum.Enum):
    GLOBAL = "global"
    NEVER = "never"
    CUSTOM = "custom"


class EstimateScope(str, enum.Enum):
    RECORDS = "records"
    FILES = "files"


class CategoryRule(BaseModel):
    """Retention rule for one category.

    ``days`` is stored as given; the rule resolver clamps invalid custom
    values to the documented default so a zero never exempts a category.
    """

    mode: CategoryRuleMode = CategoryRuleMode.GLOBAL
    days: int = 0

    @field_validator("mode", mode="before")
    @classmethod
    def coerce_mode(cls, v: Any) -> Any:
        # Unknown modes behave like "global"
        valid = {m.value for m in CategoryRuleMode}
        if isinstance(v, CategoryRuleMode) or v in valid:
            return v
        return CategoryRuleMode.GLOBAL

    @field_validator("days", mode="before")
    @classmethod
    def coerce_days(cls, v: Any) -> int:
        if v is None or v == "":
            return 0
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class RetentionSettings(BaseModel):
    """Retention configuration for one invocation.

    Loaded once by the caller and read-only to the engine. Defaults:
    - Records and files: keep (the engine skips the run)
    - Global retention: 365 days
    - Log limit: 256 entries
    - Schedule: disabled, 03:00 host time
    """

    record_disposition: RecordDisposition = Field(
        default=RecordDisposition.KEEP,
        description="Action for overdue records"
    )

    file_disposition: FileDisposition = Field(
        default=FileDisposition.KEEP,
        description="Action for files attached to overdue records"
    )

    global_retention_days: int = Field(
        default=DEFAULT_RETENTION_DAYS,
        ge=1,
        description="Retention period in days for categories without a custom rule"
    )

    category_rules: Dict[int, CategoryRule] = Field(
        default_factory=dict,
        description="Per-category rules keyed by category id"
    )

    log_limit: int = Field(
        default=DEFAULT_LOG_LIMIT,
        ge=MIN_LOG_LIMIT,
        description="Number of log entries kept after each run (>= 10)"
    )

    schedule_enabled: bool = Field(
        default=False,
        description="Whether the daily scheduled run is active"
    )

    schedule_hour: int = Field(
        default=3,
        ge=0,
        le=23,
        description="Hour of day (host time zone) for the scheduled run"
    )

    @property
    def is_noop(self) -> bool:
        """Whether both dispositions are keep, i.e. a run can never change anything."""
        return (
            self.record_disposition == RecordDisposition.KEEP
            and self.file_disposition == FileDisposition.KEEP
        )

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> "RetentionSettings":
        """Build settings from a stored options document.

        Accepts the native field names as well as the legacy option keys
        (``sub_handling``, ``file_handling``, ``global``, ``forms``,
        ``log_limit``, ``cron_active``, ``cron_hour``). Out-of-range legacy
        numbers are clamped instead of rejected.
        """
        raw = dict(raw or {})
        data: Dict[str, Any] = {}

        legacy_records = {
            "keep": RecordDisposition.KEEP,
            "trash": RecordDisposition.SOFT_DELETE,
            "delete": RecordDisposition.HARD_DELETE,
        }
        if "record_disposition" in raw:
            data["record_disposition"] = raw["record_disposition"]
        elif "sub_handling" in raw:
            data["record_disposition"] = legacy_records.get(
                str(raw["sub_handling"]), RecordDisposition.KEEP
            )

        if "file_disposition" in raw:
            data["file_disposition"] = raw["file_disposition"]
        elif "file_handling" in raw:
            data["file_disposition"] = (
                FileDisposition.DELETE if raw["file_handling"] == "delete" else FileDisposition.KEEP
            )

        global_days = raw.get("global_retention_days", raw.get("global"))
        if global_days is not None:
            data["global_retention_days"] = max(1, _to_int(global_days, DEFAULT_RETENTION_DAYS))

        rules = raw.get("category_rules", raw.get("forms"))
        if isinstance(rules, dict):
            data["category_rules"] = {
                int(category_id): rule
                for category_id, rule in rules.items()
                if _to_int(category_id, 0) > 0 and isinstance(rule, (dict, CategoryRule))
            }

        if "log_limit" in raw:
            data["log_limit"] = max(MIN_LOG_LIMIT, _to_int(raw["log_limit"], DEFAULT_LOG_LIMIT))

        enabled = raw.get("schedule_enabled", raw.get("cron_active"))
        if enabled is not None:
            data["schedule_enabled"] = bool(enabled)

        hour = raw.get("schedule_hour", raw.get("cron_hour"))
        if hour is not None:
            data["schedule_hour"] = min(23, max(0, _to_int(hour, 3)))

        return cls(**data)


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class FileCleanupStats(BaseModel):
    """Deleted/errored file counts; single references count 0 or 1."""

    deleted: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)

    def __add__(self, other: "FileCleanupStats") -> "FileCleanupStats":
        return FileCleanupStats(
            deleted=self.deleted + other.deleted,
            errors=self.errors + other.errors,
        )


class CleanupResult(BaseModel):
    """Summary of one engine invocation.

    Callers re-invoke while ``has_more`` is true.
    """

    run_id: Optional[int] = Field(default=None, description="Id of the run record")
    status: RunStatus = Field(default=RunStatus.SUCCESS, description="Terminal run status")
    processed: int = Field(default=0, ge=0, description="Records processed")
    files_deleted: int = Field(default=0, ge=0, description="Files physically removed")
    errors: int = Field(default=0, ge=0, description="Records that ended in error")
    warnings: int = Field(default=0, ge=0, description="Records that ended with a warning")
    has_more: bool = Field(default=False, description="Time limit hit, work remains")


class EstimateResult(BaseModel):
    """Dry-run count of records a cleanup would touch."""

    scope: EstimateScope
    count: int = Field(default=0, ge=0)
    active: int = Field(default=0, ge=0, description="Matching records not in the trash")
    trashed: int = Field(default=0, ge=0, description="Matching records already trashed")


class RetryDeleteResult(BaseModel):
    """Outcome of a forced single-record deletion."""

    record_id: int
    deleted: bool
    files_deleted: int = 0
    file_errors: int = 0
    message: str


class SearchMatch(BaseModel):
    """A field of a record whose value contains the search term."""

    field_key: str
    label: str
    value: str = Field(..., description="Stored value, shortened when long")


class SearchHit(BaseModel):
    record_id: int
    category_id: int
    category_label: str
    created_at: Optional[datetime] = None
    matches: List[SearchMatch] = Field(default_factory=list)


class SearchPage(BaseModel):
    """One page of person search results, newest records first."""

    term: str
    total: int = Field(default=0, ge=0, description="Matching records over all pages")
    page: int
    per_page: int
    pages: int = Field(default=0, ge=0)
    items: List[SearchHit] = Field(default_factory=list)


class BatchDeleteRequest(BaseModel):
    record_ids: List[int] = Field(..., min_length=1, max_length=MAX_BATCH_DELETE)


class BatchDeleteResult(BaseModel):
    """Outcome of deleting a selection of records.

    Ids that no longer exist are skipped and counted in neither total.
    """

    deleted: int = Field(default=0, ge=0, description="Records deleted permanently")
    failed: int = Field(default=0, ge=0, description="Records the store could not delete")
    files_deleted: int = Field(default=0, ge=0, description="Files physically removed")


class LogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    time: datetime
    category_id: int
    category_label: str
    record_id: int
    record_created_at: Optional[datetime] = None
    status: LogStatus
    message: Optional[str] = None
    actions: List[LogAction] = Field(default_factory=list)
    display_message: str = ""


class RunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    time: datetime
    status: RunStatus
    trigger: str
    message: Optional[str] = None


class LogPage(BaseModel):
    total: int
    page: int
    per_page: int
    items: List[LogEntryOut]


class RunPage(BaseModel):
    total: int
    page: int
    per_page: int
    items: List[RunOut]


class ScheduleInfo(BaseModel):
    enabled: bool
    hour: int
    timezone: str
    next_run_at: Optional[datetime] = None
