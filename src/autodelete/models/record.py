"""Record tables used by the reference SQL record store.

Hosts that keep their records elsewhere implement RecordStorePort directly
and never create these tables.
"""

from sqlalchemy import Column, Text, Integer, String, ForeignKey, Index, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, AutoIncrementId


class Category(Base):
    """A grouping of records sharing one retention rule (e.g. a form)."""
    __tablename__ = "retention_category"

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    label = Column(Text, nullable=False)

    file_fields = relationship(
        "CategoryFileField",
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="CategoryFileField.id",
    )

    def __repr__(self):
        return f"<Category(id={self.id}, label='{self.label}')>"


class CategoryFileField(Base):
    """A file-bearing field key declared on a category."""
    __tablename__ = "retention_category_file_field"
    __table_args__ = (
        UniqueConstraint("category_id", "field_key", name="uq_category_file_field"),
    )

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("retention_category.id", ondelete="CASCADE"), nullable=False)
    field_key = Column(String(100), nullable=False)

    category = relationship("Category", back_populates="file_fields")


class Record(Base):
    """One retirable unit of data."""
    __tablename__ = "retention_record"
    __table_args__ = (
        Index("ix_retention_record_category_created", "category_id", "created_at"),
    )

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("retention_category.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="publish")

    field_values = relationship(
        "RecordFieldValue",
        back_populates="record",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Record(id={self.id}, category_id={self.category_id}, status='{self.status}')>"


class RecordFieldValue(Base):
    """Raw stored value of one field of one record.

    File fields hold a path, a URL or a JSON-encoded list of either.
    """
    __tablename__ = "retention_record_field_value"
    __table_args__ = (
        UniqueConstraint("record_id", "field_key", name="uq_record_field_value"),
    )

    id = Column(AutoIncrementId, primary_key=True, autoincrement=True)
    record_id = Column(Integer, ForeignKey("retention_record.id", ondelete="CASCADE"), nullable=False)
    field_key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)

    record = relationship("Record", back_populates="field_values")
