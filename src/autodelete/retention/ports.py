"""Record Store Port - contract the host application implements.

The engine never touches the host's schema directly. It reads categories and
overdue records, asks for soft/hard deletion and reads the raw values of
file-bearing fields through this interface. Person search runs through it
too, so the host decides how its field values are matched.

Architecture: Hexagonal - port interface owned by the retention engine
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from ..config import get_settings

TRASH_STATUS = "trash"


@dataclass(frozen=True)
class CategoryInfo:
    """A category as enumerated by the host.

    Attributes:
        id: Category identifier (positive integer)
        label: Human-readable name used in the audit log
    """
    id: int
    label: str


@dataclass
class RetentionRecord:
    """Minimal read view of one host record.

    Attributes:
        id: Record identifier
        category_id: Owning category
        created_at: Creation timestamp (host time zone)
        status: Host lifecycle status; TRASH_STATUS marks soft-deleted records
    """
    id: int
    category_id: int
    created_at: Optional[datetime]
    status: str

    @property
    def is_trashed(self) -> bool:
        return self.status == TRASH_STATUS


@dataclass(frozen=True)
class FieldMatch:
    """One field value of a record that contains a search term.

    Attributes:
        field_key: Key of the matching field
        value: Full stored value
        label: Display label of the field, None when the host has none
    """
    field_key: str
    value: str
    label: Optional[str] = None


class RecordStorePort(ABC):
    """Port interface for the host datastore.

    Key Design Principles:
    - Selection (cutoff, trash inclusion, "has files") is evaluated by the host
    - Deletion is a single capability per kind; any fallback chain lives in
      the host implementation, not in the engine
    - ``now()`` is the one authoritative clock for every cutoff

    Example Usage:
        store = SqlRecordStore(db)
        for category in store.list_categories():
            overdue = store.query_overdue_records(
                category.id, cutoff, include_trash=False, require_files=False, limit=50
            )
    """

    @abstractmethod
    def list_categories(self) -> List[CategoryInfo]:
        """Enumerate categories in a stable order."""

    @abstractmethod
    def query_overdue_records(
        self,
        category_id: int,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
        limit: int,
    ) -> List[RetentionRecord]:
        """Fetch up to ``limit`` records of a category created at or before ``cutoff``.

        Args:
            category_id: Category to select from
            cutoff: Inclusive upper bound on created_at
            include_trash: Whether records in TRASH_STATUS are eligible
            require_files: Only records holding at least one non-empty file reference
            limit: Maximum number of records returned
        """

    @abstractmethod
    def count_overdue_records(
        self,
        category_id: int,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
    ) -> int:
        """Count the records query_overdue_records would select without a limit."""

    @abstractmethod
    def soft_delete(self, record_id: int) -> bool:
        """Move a record to the trash. Returns False on failure."""

    @abstractmethod
    def hard_delete(self, record_id: int) -> bool:
        """Permanently delete a record. Returns False on failure."""

    @abstractmethod
    def list_file_fields(self, category_id: int) -> List[str]:
        """Keys of the file-bearing fields of a category."""

    @abstractmethod
    def get_field_value(self, record_id: int, field_key: str) -> Any:
        """Raw stored value of a field (string, list or JSON-encoded list)."""

    @abstractmethod
    def count_search_matches(self, term: str) -> int:
        """Number of non-trashed records with a field value containing ``term``.

        Matching is a case-insensitive substring test; ``term`` is literal text,
        wildcard characters in it match only themselves.
        """

    @abstractmethod
    def search_records(self, term: str, limit: int, offset: int) -> List[RetentionRecord]:
        """Page of the records count_search_matches counts, newest first."""

    @abstractmethod
    def search_field_matches(self, record_id: int, term: str) -> List[FieldMatch]:
        """Field values of one record that contain ``term``."""

    @abstractmethod
    def get_record(self, record_id: int) -> Optional[RetentionRecord]:
        """Load a single record, or None if it does not exist."""

    def category_label(self, category_id: int) -> Optional[str]:
        """Human-readable label of a category, None when unknown."""
        for category in self.list_categories():
            if category.id == category_id:
                return category.label
        return None

    def now(self) -> datetime:
        """Current time in the host's configured time zone."""
        return datetime.now(ZoneInfo(get_settings().TIMEZONE))
