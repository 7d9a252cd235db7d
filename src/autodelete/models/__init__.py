"""SQLAlchemy models for the retention engine"""

from .base import Base
from .audit_log import (
    LogAction,
    LogStatus,
    RetentionLogEntry,
    RetentionRun,
    RunStatus,
    RunTrigger,
)
from .record import Category, CategoryFileField, Record, RecordFieldValue

__all__ = [
    "Base",
    "LogAction",
    "LogStatus",
    "RetentionLogEntry",
    "RetentionRun",
    "RunStatus",
    "RunTrigger",
    "Category",
    "CategoryFileField",
    "Record",
    "RecordFieldValue",
]
