"""
SQLAlchemy base configuration for Identity Reconciliation System
This module sets up the SQLAlchemy declarative base and the shared
columns every persisted entity carries (surrogate id, timestamps,
soft delete marker).
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Timezone-aware current time used for all timestamp columns"""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""
    pass


class BaseModel(Base):
    """
    Abstract model with the columns shared by every table
    Rows are never physically removed; deleted_at marks them as gone
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
        comment="Creation time; defines seniority within an identity cluster"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now
    )

    deleted_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Soft delete marker; rows with a value are excluded from all queries"
    )

