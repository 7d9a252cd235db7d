"""Base SQLAlchemy declarative base and portable column types for all models"""

from sqlalchemy.orm import declarative_base
from sqlalchemy import BigInteger, Integer, TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Log entries keep their applied actions here; JSONB on PostgreSQL,
    plain JSON on SQLite for tests.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


# SQLite only autoincrements INTEGER PRIMARY KEY columns
AutoIncrementId = BigInteger().with_variant(Integer(), "sqlite")


Base = declarative_base()
