"""Retention audit tables: per-record log entries and per-invocation runs"""

import enum

from sqlalchemy import Column, Text, Integer, String, Index, DateTime, Enum as SQLEnum

from .base import Base, AutoIncrementId, PortableJSONB


class LogStatus(str, enum.Enum):
    """Outcome of one processed record."""
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SKIPPED = "skipped"


class RunStatus(str, enum.Enum):
    """Lifecycle of one engine invocation.

    RUNNING is the only non-terminal state; a run leaves it exactly once.
    """
    RUNNING = "running"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SKIPPED = "skipped"


class RunTrigger(str, enum.Enum):
    """What started a run."""
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class LogAction(str, enum.Enum):
    """Actions applied to a record, kept apart from the free-text message."""
    DELETE = "DELETE"
    TRASH = "TRASH"
    FILES = "FILES"
    WARNING = "WARNING"
    SKIP = "SKIP"
    MANUAL = "MANUAL"


class RetentionLogEntry(Base):
    """One audit row per processed record.

    Append-only; pruned in bulk (oldest ids first) to the configured log limit.
    """
    __tablename__ = "retention_log"
    __table_args__ = (
        Index("ix_retention_log_category_id", "category_id"),
        Index("ix_retention_log_status", "status"),
        Index("ix_retention_log_time", "time"),
    )

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    time = Column(DateTime(timezone=True), nullable=False)
    category_id = Column(Integer, nullable=False)
    category_label = Column(Text, nullable=False, default="unknown")
    record_id = Column(Integer, nullable=False)
    record_created_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        SQLEnum(LogStatus, name="retention_log_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    message = Column(Text, nullable=True)
    actions = Column(PortableJSONB, nullable=False, default=list)

    def __repr__(self):
        return (
            f"<RetentionLogEntry(id={self.id}, record_id={self.record_id}, "
            f"status={self.status})>"
        )

    @property
    def display_message(self) -> str:
        """Message prefixed with its action tags, e.g. "[TRASH] [FILES] ..."."""
        tags = " ".join(f"[{action}]" for action in (self.actions or []))
        if not tags:
            return self.message or ""
        return f"{tags} {self.message or ''}".rstrip()


class RetentionRun(Base):
    """One row per engine invocation (scheduled or manual).

    Created RUNNING, updated once to a terminal status, never deleted
    individually.
    """
    __tablename__ = "retention_run"
    __table_args__ = (
        Index("ix_retention_run_time", "time"),
    )

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    time = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        SQLEnum(RunStatus, name="retention_run_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RunStatus.RUNNING,
    )
    trigger = Column(String(20), nullable=False, default=RunTrigger.MANUAL.value)
    message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<RetentionRun(id={self.id}, status={self.status}, trigger='{self.trigger}')>"

    @property
    def is_complete(self) -> bool:
        """Whether the run has reached a terminal status."""
        return self.status != RunStatus.RUNNING
