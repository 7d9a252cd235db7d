"""Pytest fixtures for retention engine testing.

Provides reusable test fixtures for:
- SQLite in-memory database session (tables created and dropped per test)
- In-memory RecordStorePort fake with a fixed clock
- Sandboxed upload root with helpers to create files
- Fully wired RetentionService / BatchEraser instances

Usage:
    def test_cleanup(make_service, fake_store, retention_settings):
        fake_store.add_record(category_id=1, age_days=400)
        result = make_service(retention_settings).run_manual()
        assert result.processed == 1
"""

import os
from datetime import datetime, timedelta, timezone

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from typing import Any, Dict, Generator, List, Optional, Set, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from autodelete.models import Base
from autodelete.retention.eraser import BatchEraser
from autodelete.retention.file_deleter import FileDeleter
from autodelete.retention.ports import CategoryInfo, FieldMatch, RecordStorePort, RetentionRecord, TRASH_STATUS
from autodelete.retention.run_logger import RunLogger
from autodelete.retention.schemas import FileDisposition, RecordDisposition, RetentionSettings
from autodelete.retention.service import RetentionService


FIXED_NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

UPLOAD_BASE_URL = "https://example.com/uploads"

# Single shared connection so every session sees the same in-memory database
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeRecordStore(RecordStorePort):
    """In-memory RecordStorePort with failure injection and call tracking."""

    def __init__(self, now: datetime = FIXED_NOW):
        self._now = now
        self.categories: List[CategoryInfo] = []
        self.records: Dict[int, RetentionRecord] = {}
        self.file_fields: Dict[int, List[str]] = {}
        self.field_values: Dict[Tuple[int, str], Any] = {}
        self.field_labels: Dict[str, str] = {}
        self.fail_hard_delete: Set[int] = set()
        self.fail_soft_delete: Set[int] = set()
        self.raise_on_delete: Set[int] = set()
        self.queried_categories: List[int] = []
        self.list_file_fields_calls = 0
        self.mutations = 0
        self._next_id = 1

    def add_category(self, category_id: int, label: str = "", file_fields: Optional[List[str]] = None) -> CategoryInfo:
        category = CategoryInfo(id=category_id, label=label or f"Form {category_id}")
        self.categories.append(category)
        self.file_fields[category_id] = list(file_fields or [])
        return category

    def add_record(
        self,
        category_id: int,
        age_days: float,
        status: str = "publish",
        files: Optional[Dict[str, Any]] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> RetentionRecord:
        record = RetentionRecord(
            id=self._next_id,
            category_id=category_id,
            created_at=self._now - timedelta(days=age_days),
            status=status,
        )
        self._next_id += 1
        self.records[record.id] = record
        for field_key, value in {**(fields or {}), **(files or {})}.items():
            self.field_values[(record.id, field_key)] = value
        return record

    def now(self) -> datetime:
        return self._now

    def list_categories(self) -> List[CategoryInfo]:
        return list(self.categories)

    def _matching(self, category_id, cutoff, include_trash, require_files) -> List[RetentionRecord]:
        matches = []
        for record in self.records.values():
            if record.category_id != category_id or record.created_at > cutoff:
                continue
            if not include_trash and record.status == TRASH_STATUS:
                continue
            if require_files and not self._has_files(record):
                continue
            matches.append(record)
        return sorted(matches, key=lambda r: (r.created_at, r.id))

    def _has_files(self, record: RetentionRecord) -> bool:
        for field_key in self.file_fields.get(record.category_id, []):
            if self.field_values.get((record.id, field_key)) not in (None, "", [], "[]"):
                return True
        return False

    def query_overdue_records(self, category_id, cutoff, include_trash, require_files, limit):
        self.queried_categories.append(category_id)
        matches = self._matching(category_id, cutoff, include_trash, require_files)[:limit]
        # Copies, like rows fetched from a real datastore
        return [RetentionRecord(r.id, r.category_id, r.created_at, r.status) for r in matches]

    def count_overdue_records(self, category_id, cutoff, include_trash, require_files):
        self.queried_categories.append(category_id)
        return len(self._matching(category_id, cutoff, include_trash, require_files))

    def soft_delete(self, record_id: int) -> bool:
        if record_id in self.raise_on_delete:
            raise RuntimeError("datastore unavailable")
        if record_id in self.fail_soft_delete or record_id not in self.records:
            return False
        self.records[record_id].status = TRASH_STATUS
        self.mutations += 1
        return True

    def hard_delete(self, record_id: int) -> bool:
        if record_id in self.raise_on_delete:
            raise RuntimeError("datastore unavailable")
        if record_id in self.fail_hard_delete or record_id not in self.records:
            return False
        del self.records[record_id]
        for key in [k for k in self.field_values if k[0] == record_id]:
            del self.field_values[key]
        self.mutations += 1
        return True

    def list_file_fields(self, category_id: int) -> List[str]:
        self.list_file_fields_calls += 1
        return list(self.file_fields.get(category_id, []))

    def get_field_value(self, record_id: int, field_key: str) -> Any:
        return self.field_values.get((record_id, field_key))

    def _search_hits(self, term: str) -> List[RetentionRecord]:
        needle = term.lower()
        hits = set()
        for (record_id, _), value in self.field_values.items():
            record = self.records.get(record_id)
            if record is None or record.is_trashed:
                continue
            if isinstance(value, str) and needle in value.lower():
                hits.add(record_id)
        return sorted((self.records[i] for i in hits), key=lambda r: (r.created_at, r.id), reverse=True)

    def count_search_matches(self, term: str) -> int:
        return len(self._search_hits(term))

    def search_records(self, term: str, limit: int, offset: int) -> List[RetentionRecord]:
        return self._search_hits(term)[offset:offset + limit]

    def search_field_matches(self, record_id: int, term: str) -> List[FieldMatch]:
        needle = term.lower()
        return [
            FieldMatch(field_key=key, value=value, label=self.field_labels.get(key))
            for (rid, key), value in sorted(self.field_values.items(), key=lambda item: item[0])
            if rid == record_id and isinstance(value, str) and needle in value.lower()
        ]

    def get_record(self, record_id: int) -> Optional[RetentionRecord]:
        return self.records.get(record_id)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def fake_store() -> FakeRecordStore:
    """Empty in-memory store whose clock is fixed at FIXED_NOW."""
    return FakeRecordStore()


@pytest.fixture
def upload_root(tmp_path):
    """Sandbox directory files may be deleted from."""
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def make_upload(upload_root):
    """Create a file under the upload root and return its absolute path."""
    def _make(relative: str, content: str = "data") -> str:
        path = upload_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return str(path)

    return _make


@pytest.fixture
def file_deleter(upload_root) -> FileDeleter:
    return FileDeleter(str(upload_root), UPLOAD_BASE_URL)


@pytest.fixture
def run_logger(db_session: Session, fake_store: FakeRecordStore) -> RunLogger:
    return RunLogger(db_session, clock=fake_store.now, label_resolver=fake_store.category_label)


@pytest.fixture
def retention_settings() -> RetentionSettings:
    """Soft delete + file delete, 365 days globally."""
    return RetentionSettings(
        record_disposition=RecordDisposition.SOFT_DELETE,
        file_disposition=FileDisposition.DELETE,
    )


@pytest.fixture
def make_eraser(fake_store, run_logger, file_deleter):
    """Build a BatchEraser; ``timer`` defaults to a frozen clock."""
    def _make(**kwargs) -> BatchEraser:
        kwargs.setdefault("timer", lambda: 0.0)
        return BatchEraser(fake_store, run_logger, file_deleter, **kwargs)

    return _make


@pytest.fixture
def make_service(db_session, fake_store, file_deleter):
    """Build a RetentionService over the fake store with a frozen timer."""
    def _make(settings: RetentionSettings, **kwargs) -> RetentionService:
        kwargs.setdefault("timer", lambda: 0.0)
        return RetentionService(
            db=db_session,
            store=fake_store,
            settings=settings,
            file_deleter=file_deleter,
            **kwargs,
        )

    return _make
