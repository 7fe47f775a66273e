"""
Collaborator ports of the count service.

The count engine reads par levels and unit costs from a product catalog
it does not own, and hands stock adjustments to an inventory ledger it
does not own.  Both are declared here as Protocols with small in-memory
implementations for tests and local runs.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Protocol, Sequence, runtime_checkable
from uuid import UUID

from count_engines.adjustment import StockAdjustment
from count_kernel.logging_config import get_logger

logger = get_logger("services.ports")


# =========================================================================
# Catalog
# =========================================================================


@runtime_checkable
class CatalogReader(Protocol):
    """
    Read-only lookups of expected levels and costs for one location.

    Implementations return Decimal values keyed by product id.  Products
    without a par level or cost may simply be absent.
    """

    def par_levels(self, location_id: str) -> Mapping[str, Decimal]: ...

    def unit_costs(self, location_id: str) -> Mapping[str, Decimal]: ...


@dataclass
class StaticCatalog:
    """In-memory catalog: {location_id: {product_id: Decimal}}."""

    par: dict[str, dict[str, Decimal]] = field(default_factory=dict)
    costs: dict[str, dict[str, Decimal]] = field(default_factory=dict)

    def par_levels(self, location_id: str) -> Mapping[str, Decimal]:
        return dict(self.par.get(location_id, {}))

    def unit_costs(self, location_id: str) -> Mapping[str, Decimal]:
        return dict(self.costs.get(location_id, {}))

    def set_par(self, location_id: str, product_id: str, par_level: Decimal) -> None:
        self.par.setdefault(location_id, {})[product_id] = par_level

    def set_cost(self, location_id: str, product_id: str, unit_cost: Decimal) -> None:
        self.costs.setdefault(location_id, {})[product_id] = unit_cost


# =========================================================================
# Inventory ledger
# =========================================================================


@runtime_checkable
class InventoryLedger(Protocol):
    """Receives the stock adjustments of an approved count session."""

    def record_adjustments(
        self,
        session_id: UUID,
        adjustments: Sequence[StockAdjustment],
    ) -> None: ...


class InMemoryInventoryLedger:
    """Thread-safe ledger that keeps adjustments in a list, keyed by session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_session: dict[UUID, tuple[StockAdjustment, ...]] = {}

    def record_adjustments(
        self,
        session_id: UUID,
        adjustments: Sequence[StockAdjustment],
    ) -> None:
        with self._lock:
            self._by_session[session_id] = tuple(adjustments)
        logger.info(
            "stock_adjustments_recorded",
            extra={"session_id": str(session_id), "adjustment_count": len(adjustments)},
        )

    def adjustments_for(self, session_id: UUID) -> tuple[StockAdjustment, ...]:
        with self._lock:
            return self._by_session.get(session_id, ())

    @property
    def session_ids(self) -> tuple[UUID, ...]:
        with self._lock:
            return tuple(self._by_session)
