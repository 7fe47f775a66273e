"""
Declarative base for the count tables.

Every count table gets a uuid4 primary key stored as a 36-character
string, so SQLite test databases and PostgreSQL share one schema.  Counted
quantities and unit costs map to Numeric(38, 9) and are never floats.
``TrackedBase`` adds who created and last changed a row, and when.

Nothing in here imports from models/ or domain/.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID in Python, String(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Audit columns for count rows.

    ``created_at`` and ``updated_at`` come from the database clock;
    ``created_by_id`` is required, ``updated_by_id`` is set by the
    repository on every save.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
