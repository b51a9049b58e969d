"""
Base model classes and common SQLAlchemy components.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase

# Define naming convention for constraints to ensure consistent naming
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite and MySQL DATETIME columns carry no offset."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    metadata = metadata


class TimestampMixin:
    """Adds created_at and updated_at columns maintained on the Python side."""

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
