"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID, enum columns)
in a base module ensures consistency across all models and reduces code
duplication.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Type

from sqlalchemy import Column, DateTime, String, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


def generate_uuid() -> str:
    """Opaque string identifier for new rows."""
    return str(uuid.uuid4())


def enum_column_type(enum_cls: Type[Enum], name: str, length: int = 20) -> SQLEnum:
    """
    Build a portable enum column type.

    WHY: native_enum=False stores the value in a VARCHAR with a CHECK
    constraint, so the same migration runs on PostgreSQL and SQLite.
    values_callable stores the lowercase value, not the member name.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=length,
        values_callable=lambda enum: [e.value for e in enum],
    )


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    Timestamps are naive UTC.
    """

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PrimaryKeyMixin:
    """
    Mixin to add an opaque string primary key to models.

    WHY: Ids are exposed on the API and must not be guessable or reveal
    record counts, so they are UUID4 strings rather than serial integers.
    """

    id = Column(String(36), primary_key=True, default=generate_uuid)
