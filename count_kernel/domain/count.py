"""
Count Domain Values (``count_kernel.domain.count``).

Responsibility
--------------
Frozen value objects for the nouns of a physical inventory count: the count
session (aggregate root), its ordered storage areas, and the per-product
count items recorded inside each area.

Architecture
------------
Layer: **Kernel domain** -- pure data, ZERO I/O.  Sessions are never mutated
in place; lifecycle transitions (``count_engines.lifecycle``) return a new
``CountSession``.  A rejected operation therefore cannot leave a
half-applied session behind.

Invariants
----------
- ``CountItem.total_quantity == full_units + partial_unit`` always.  It is a
  derived property and cannot be supplied by a caller.
- ``full_units`` is a non-negative ``int``; ``partial_unit`` is a
  ``Decimal`` in [0, 1).
- One item per product per area (``CountArea.items`` is keyed by product).
- ``CountSession.areas`` is ordered by ``CountArea.order``; every area's
  ``session_id`` equals the session id.

Failure Modes
-------------
- ``InvalidQuantityError`` on construction of an invalid ``CountItem``.
- ``AreaNotFoundError`` from ``CountSession.area()`` for a foreign area id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping
from uuid import UUID

from count_kernel.exceptions import AreaNotFoundError, InvalidQuantityError

ZERO = Decimal("0")
ONE = Decimal("1")


class CountStatus(str, Enum):
    """Count session lifecycle states."""

    DRAFT = "DRAFT"  # Not started
    IN_PROGRESS = "IN_PROGRESS"  # Currently counting
    COMPLETED = "COMPLETED"  # Counting done, pending approval
    APPROVED = "APPROVED"  # Approved and finalized (terminal)


class AreaStatus(str, Enum):
    """Storage area states within a count session."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class CountType(str, Enum):
    """Kind of count.  Informational only; reconciliation is identical."""

    FULL = "FULL"  # Complete inventory count
    SPOT = "SPOT"  # Quick count of specific items
    CYCLE = "CYCLE"  # Rotating count of different areas


def to_partial_unit(value: Decimal | str | int | float) -> Decimal:
    """
    Normalize a partial (tenthed) unit to ``Decimal`` and validate its range.

    Floats are converted through ``str`` so ``0.3`` becomes ``Decimal("0.3")``
    rather than its binary expansion.

    Raises:
        InvalidQuantityError: If the value is not a finite number in [0, 1).
    """
    if isinstance(value, bool):
        raise InvalidQuantityError("partial_unit", value, "must be a number")
    try:
        partial = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidQuantityError("partial_unit", value, "must be a number") from e
    if not partial.is_finite():
        raise InvalidQuantityError("partial_unit", value, "must be finite")
    if partial < ZERO or partial >= ONE:
        raise InvalidQuantityError("partial_unit", value, "must be in [0, 1)")
    return partial


def validate_full_units(value: int) -> int:
    """
    Validate a whole-container count.

    Raises:
        InvalidQuantityError: If the value is not a non-negative ``int``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError("full_units", value, "must be an integer")
    if value < 0:
        raise InvalidQuantityError("full_units", value, "must not be negative")
    return value


@dataclass(frozen=True)
class CountItem:
    """
    One product's counted quantity inside one area.

    Contract: Immutable.  ``partial_unit`` is normalized to ``Decimal`` at
    construction; ``total_quantity`` is always derived.
    """

    product_id: str
    full_units: int
    partial_unit: Decimal
    counted_by_id: UUID
    counted_at: datetime
    notes: str | None = None

    def __post_init__(self) -> None:
        validate_full_units(self.full_units)
        object.__setattr__(self, "partial_unit", to_partial_unit(self.partial_unit))

    @property
    def total_quantity(self) -> Decimal:
        """Canonical counted quantity: whole containers plus tenthed remainder."""
        return Decimal(self.full_units) + self.partial_unit


@dataclass(frozen=True)
class CountArea:
    """
    A named physical sub-location of a count session.

    Contract: Immutable.  ``items`` is a read-only mapping keyed by
    product id; re-recording a product replaces its entry.
    """

    id: UUID
    session_id: UUID
    name: str
    order: int
    status: AreaStatus = AreaStatus.PENDING
    items: Mapping[str, CountItem] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))

    @property
    def is_completed(self) -> bool:
        return self.status == AreaStatus.COMPLETED

    def quantity_of(self, product_id: str) -> Decimal:
        """Counted total for a product in this area (0 if not counted)."""
        item = self.items.get(product_id)
        return item.total_quantity if item is not None else ZERO

    def with_item(self, item: CountItem) -> CountArea:
        items = dict(self.items)
        items[item.product_id] = item
        return replace(self, items=items)

    def without_item(self, product_id: str) -> CountArea:
        items = {k: v for k, v in self.items.items() if k != product_id}
        return replace(self, items=items)


@dataclass(frozen=True)
class CountSession:
    """
    Aggregate root: a named count job for one location.

    Contract: Immutable.  ``areas`` is kept sorted by ``CountArea.order``
    (ties keep their supplied order).  ``total_value`` and
    ``items_counted`` are derived summaries recomputed by the lifecycle;
    ``version`` is the optimistic concurrency token owned by the repository.
    """

    id: UUID
    name: str
    location_id: str
    status: CountStatus = CountStatus.DRAFT
    count_type: CountType = CountType.FULL
    areas: tuple[CountArea, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    notes: str | None = None
    total_value: Decimal = ZERO
    items_counted: int = 0
    version: int = 0

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.areas, key=lambda a: a.order))
        for area in ordered:
            if area.session_id != self.id:
                raise ValueError(
                    f"Area {area.id} belongs to session {area.session_id}, "
                    f"not {self.id}"
                )
        object.__setattr__(self, "areas", ordered)

    def area(self, area_id: UUID) -> CountArea:
        """Look up an owned area by id."""
        for area in self.areas:
            if area.id == area_id:
                return area
        raise AreaNotFoundError(str(self.id), str(area_id))

    def with_area(self, updated: CountArea) -> CountSession:
        """Return a copy of the session with one area replaced."""
        self.area(updated.id)
        areas = tuple(updated if a.id == updated.id else a for a in self.areas)
        return replace(self, areas=areas)

    @property
    def all_areas_completed(self) -> bool:
        return all(area.is_completed for area in self.areas)

    @property
    def completed_area_count(self) -> int:
        return sum(1 for area in self.areas if area.is_completed)

    def iter_items(self) -> Iterator[tuple[CountArea, CountItem]]:
        """Yield (area, item) pairs in area order, then product order."""
        for area in self.areas:
            for product_id in sorted(area.items):
                yield area, area.items[product_id]

    def product_ids(self) -> tuple[str, ...]:
        """Sorted distinct product ids counted anywhere in the session."""
        return tuple(sorted({item.product_id for _, item in self.iter_items()}))

    def fingerprint_key(self) -> tuple:
        """Identity plus counted state: area statuses and per-product totals."""
        return (
            str(self.id),
            self.status.value,
            tuple(
                (
                    str(area.id),
                    area.status.value,
                    {p: str(i.total_quantity) for p, i in area.items.items()},
                )
                for area in self.areas
            ),
        )
