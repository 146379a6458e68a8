"""SQLAlchemy declarative base and shared column types for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- JSONDocument: JSON column type that becomes JSONB on PostgreSQL
- TimestampMixin: created_at / updated_at columns

Column types are dialect-neutral with PostgreSQL variants so the same models
run against PostgreSQL in production and SQLite locally and in tests.
"""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONDocument = sa.JSON().with_variant(JSONB(), "postgresql")
"""JSON column type: ``JSONB`` on PostgreSQL, generic ``JSON`` elsewhere."""


class Base(DeclarativeBase):
    """Shared declarative base for all feed importer models."""

    type_annotation_map = {
        datetime: sa.DateTime(timezone=True),
    }


class TimestampMixin:
    """Adds created_at and updated_at columns.

    Application code sets both explicitly from an injected clock; the server
    default only covers rows written outside the ORM (migrations, SQL shells).
    """

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )
