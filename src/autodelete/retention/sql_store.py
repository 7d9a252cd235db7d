"""SQLAlchemy implementation of RecordStorePort.

Reference adapter for hosts that keep their records in the same database as
the retention tables (``retention_category``, ``retention_record`` ...).
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.record import Category, CategoryFileField, Record, RecordFieldValue
from .ports import CategoryInfo, FieldMatch, RecordStorePort, RetentionRecord, TRASH_STATUS

logger = logging.getLogger(__name__)

# Stored values that mean "no file"
_EMPTY_VALUES = ("", "[]", "{}")

_LIKE_ESCAPE = "\\"


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def like_pattern(term: str) -> str:
    """Substring LIKE pattern in which the term's own wildcards are literal."""
    escaped = (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


class SqlRecordStore(RecordStorePort):
    """RecordStorePort over the reference record tables.

    Record timestamps are stored in UTC; cutoffs in any zone are converted
    before they are compared.

    Args:
        db: Session bound to the host database
    """

    def __init__(self, db: Session):
        self.db = db

    def list_categories(self) -> List[CategoryInfo]:
        categories = self.db.query(Category).order_by(Category.id).all()
        return [CategoryInfo(id=c.id, label=c.label) for c in categories]

    def query_overdue_records(
        self,
        category_id: int,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
        limit: int,
    ) -> List[RetentionRecord]:
        records = (
            self._overdue_query(category_id, cutoff, include_trash, require_files)
            .order_by(Record.created_at.asc(), Record.id.asc())
            .limit(limit)
            .all()
        )
        return [self._to_retention_record(record) for record in records]

    def count_overdue_records(
        self,
        category_id: int,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
    ) -> int:
        return self._overdue_query(category_id, cutoff, include_trash, require_files).count()

    def soft_delete(self, record_id: int) -> bool:
        record = self.db.get(Record, record_id)
        if record is None:
            return False

        try:
            record.status = TRASH_STATUS
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Soft delete of record {record_id} failed",
                exc_info=True,
                extra={"record_id": record_id, "error": str(e)},
            )
            return False
        return True

    def hard_delete(self, record_id: int) -> bool:
        record = self.db.get(Record, record_id)
        if record is None:
            return False

        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Hard delete of record {record_id} failed",
                exc_info=True,
                extra={"record_id": record_id, "error": str(e)},
            )
            return False
        return True

    def list_file_fields(self, category_id: int) -> List[str]:
        rows = (
            self.db.query(CategoryFileField.field_key)
            .filter(CategoryFileField.category_id == category_id)
            .order_by(CategoryFileField.id)
            .all()
        )
        return [row.field_key for row in rows]

    def get_field_value(self, record_id: int, field_key: str) -> Any:
        return (
            self.db.query(RecordFieldValue.value)
            .filter(
                RecordFieldValue.record_id == record_id,
                RecordFieldValue.field_key == field_key,
            )
            .scalar()
        )

    def get_record(self, record_id: int) -> Optional[RetentionRecord]:
        record = self.db.get(Record, record_id)
        return self._to_retention_record(record) if record else None

    def category_label(self, category_id: int) -> Optional[str]:
        category = self.db.get(Category, category_id)
        return category.label if category else None

    def count_search_matches(self, term: str) -> int:
        return self._search_query(term).count()

    def search_records(self, term: str, limit: int, offset: int) -> List[RetentionRecord]:
        records = (
            self._search_query(term)
            .order_by(Record.created_at.desc(), Record.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [self._to_retention_record(record) for record in records]

    def search_field_matches(self, record_id: int, term: str) -> List[FieldMatch]:
        rows = (
            self.db.query(RecordFieldValue.field_key, RecordFieldValue.value)
            .filter(
                RecordFieldValue.record_id == record_id,
                self._value_contains(term),
            )
            .order_by(RecordFieldValue.id)
            .all()
        )
        return [FieldMatch(field_key=row.field_key, value=row.value) for row in rows]

    @staticmethod
    def _value_contains(term: str):
        return RecordFieldValue.value.ilike(like_pattern(term), escape=_LIKE_ESCAPE)

    def _search_query(self, term: str):
        return self.db.query(Record).filter(
            Record.status != TRASH_STATUS,
            Record.field_values.any(self._value_contains(term)),
        )

    def _overdue_query(
        self,
        category_id: int,
        cutoff: datetime,
        include_trash: bool,
        require_files: bool,
    ):
        query = self.db.query(Record).filter(
            Record.category_id == category_id,
            Record.created_at <= as_utc(cutoff),
        )

        if not include_trash:
            query = query.filter(Record.status != TRASH_STATUS)

        if require_files:
            file_keys = select(CategoryFileField.field_key).where(
                CategoryFileField.category_id == category_id
            )
            query = query.filter(
                Record.field_values.any(
                    and_(
                        RecordFieldValue.field_key.in_(file_keys),
                        RecordFieldValue.value.isnot(None),
                        RecordFieldValue.value.notin_(_EMPTY_VALUES),
                    )
                )
            )

        return query

    @staticmethod
    def _to_retention_record(record: Record) -> RetentionRecord:
        return RetentionRecord(
            id=record.id,
            category_id=record.category_id,
            created_at=as_utc(record.created_at) if record.created_at else None,
            status=record.status,
        )
