"""
Module: count_kernel.models.count
Responsibility: SQLAlchemy ORM persistence for count sessions, their storage
    areas, and the count items recorded inside each area.  Maps to the frozen
    values in ``count_kernel.domain.count``.

Architecture position: Kernel > Models.  Inherits from Base / TrackedBase
    (count_kernel.db.base).  Products and locations belong to the catalog
    collaborator and are referenced by String key with NO foreign key.

Invariants enforced:
    - UNIQUE(area_id, product_id): one count item per product per area.
    - total_quantity is persisted for reporting queries but is always written
      from the domain value (full_units + partial_unit), never from input.
    - Areas and items are owned exclusively by their session (cascade delete,
      delete-orphan); they cannot be reassigned.
    - count_sessions.version is the optimistic concurrency token; the
      repository bumps it with a compare-and-swap UPDATE on every save.

Failure modes:
    - IntegrityError on a duplicate (area_id, product_id) row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from count_kernel.db.base import Base, TrackedBase, UUIDString
from count_kernel.domain.count import (
    AreaStatus,
    CountArea,
    CountItem,
    CountSession,
    CountStatus,
    CountType,
)


class CountSessionModel(TrackedBase):
    """
    ORM model for a count session (aggregate root).

    Maps to: count_kernel.domain.count.CountSession (frozen dataclass).
    """

    __tablename__ = "count_sessions"

    __table_args__ = (
        Index("idx_count_session_location", "location_id"),
        Index("idx_count_session_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(200))
    location_id: Mapped[str] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(50), default=CountStatus.DRAFT.value)
    count_type: Mapped[str] = mapped_column(String(50), default=CountType.FULL.value)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    items_counted: Mapped[int] = mapped_column(default=0)
    version: Mapped[int] = mapped_column(default=0, nullable=False)

    areas: Mapped[list["CountAreaModel"]] = relationship(
        "CountAreaModel",
        back_populates="session",
        order_by="CountAreaModel.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<CountSessionModel {self.id} {self.name!r} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> CountSession:
        """Convert ORM model (with its areas and items) to a frozen CountSession."""
        return CountSession(
            id=self.id,
            name=self.name,
            location_id=self.location_id,
            status=CountStatus(self.status),
            count_type=CountType(self.count_type),
            areas=tuple(area.to_dto() for area in self.areas),
            started_at=self.started_at,
            completed_at=self.completed_at,
            approved_at=self.approved_at,
            approved_by_id=self.approved_by_id,
            notes=self.notes,
            total_value=self.total_value,
            items_counted=self.items_counted,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: CountSession, created_by_id: UUID) -> CountSessionModel:
        """Create ORM model (with areas and items) from a CountSession."""
        return cls(
            id=dto.id,
            name=dto.name,
            location_id=dto.location_id,
            status=dto.status.value,
            count_type=dto.count_type.value,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            approved_at=dto.approved_at,
            approved_by_id=dto.approved_by_id,
            notes=dto.notes,
            total_value=dto.total_value,
            items_counted=dto.items_counted,
            version=dto.version,
            created_by_id=created_by_id,
            areas=[CountAreaModel.from_dto(area) for area in dto.areas],
        )


class CountAreaModel(Base):
    """
    ORM model for a storage area inside a count session.

    Maps to: count_kernel.domain.count.CountArea (frozen dataclass).
    """

    __tablename__ = "count_areas"

    __table_args__ = (
        Index("idx_count_area_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("count_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200))
    order: Mapped[int] = mapped_column("area_order", default=0)
    status: Mapped[str] = mapped_column(String(50), default=AreaStatus.PENDING.value)

    session: Mapped["CountSessionModel"] = relationship(
        "CountSessionModel", back_populates="areas",
    )
    items: Mapped[list["CountItemModel"]] = relationship(
        "CountItemModel",
        back_populates="area",
        order_by="CountItemModel.product_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<CountAreaModel {self.id} {self.name!r} status={self.status}>"

    def to_dto(self) -> CountArea:
        return CountArea(
            id=self.id,
            session_id=self.session_id,
            name=self.name,
            order=self.order,
            status=AreaStatus(self.status),
            items={item.product_id: item.to_dto() for item in self.items},
        )

    @classmethod
    def from_dto(cls, dto: CountArea) -> CountAreaModel:
        return cls(
            id=dto.id,
            session_id=dto.session_id,
            name=dto.name,
            order=dto.order,
            status=dto.status.value,
            items=[CountItemModel.from_dto(item) for item in dto.items.values()],
        )


class CountItemModel(Base):
    """
    ORM model for one product's count inside one area.

    Maps to: count_kernel.domain.count.CountItem (frozen dataclass).
    """

    __tablename__ = "count_items"

    __table_args__ = (
        UniqueConstraint("area_id", "product_id", name="uq_count_item_area_product"),
        Index("idx_count_item_product", "product_id"),
    )

    area_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("count_areas.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[str] = mapped_column(String(100))
    full_units: Mapped[int] = mapped_column(default=0)
    partial_unit: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    counted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    counted_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    area: Mapped["CountAreaModel"] = relationship(
        "CountAreaModel", back_populates="items",
    )

    def __repr__(self) -> str:
        return (
            f"<CountItemModel {self.product_id} area={self.area_id} "
            f"qty={self.total_quantity}>"
        )

    def to_dto(self) -> CountItem:
        # total_quantity is re-derived by CountItem, not read back.
        return CountItem(
            product_id=self.product_id,
            full_units=int(self.full_units),
            partial_unit=self.partial_unit,
            counted_by_id=self.counted_by_id,
            counted_at=self.counted_at,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: CountItem) -> CountItemModel:
        return cls(
            product_id=dto.product_id,
            full_units=dto.full_units,
            partial_unit=dto.partial_unit,
            total_quantity=dto.total_quantity,
            counted_by_id=dto.counted_by_id,
            counted_at=dto.counted_at,
            notes=dto.notes,
        )

    def apply(self, dto: CountItem) -> None:
        """Overwrite this row from a domain item (last write wins)."""
        self.full_units = dto.full_units
        self.partial_unit = dto.partial_unit
        self.total_quantity = dto.total_quantity
        self.counted_by_id = dto.counted_by_id
        self.counted_at = dto.counted_at
        self.notes = dto.notes
