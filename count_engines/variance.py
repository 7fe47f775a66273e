"""
count_engines.variance -- Session-level count variance aggregation.

Responsibility:
    Once a count session is COMPLETED, compute the authoritative per-product
    variance (actual counted vs par/expected, in quantity and in cost) and
    the session-level weighted variance percentage consumed by alerting,
    reordering and reporting collaborators.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``CountService`` at the session COMPLETED transition and on
    demand (audit re-runs), and by ``count_engines.report`` /
    ``count_engines.adjustment``.

Invariants enforced:
    - Conservation: actual_qty for a product is the sum of its
      total_quantity over every area; nothing lost or double-counted.
    - Replay safety: identical inputs produce identical outputs; no clock,
      no randomness, output sorted by product id.
    - No-baseline products (expected_qty == 0) appear with their quantity
      variance but are excluded from total_expected_value,
      total_variance_value and therefore variance_percent.
    - Division-by-zero safe: variance_percent is 0 when
      total_expected_value is 0.

Failure modes:
    - None for well-formed input.  Missing par levels and unit costs default
      to 0.

Usage:
    aggregator = VarianceAggregator()
    result = aggregator.aggregate(
        session=session,
        par_levels={"VODKA-750": Decimal("10")},
        unit_costs={"VODKA-750": Decimal("18.50")},
    )
    result.for_product("VODKA-750").variance  # Decimal("-1")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from count_kernel.domain.count import ZERO, CountSession
from count_kernel.logging_config import get_logger
from count_engines.tracer import traced_engine

logger = get_logger("engines.variance")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ProductVariance:
    """
    Variance of one product across the whole session.

    All fields are immutable.  Use properties for derived values.
    """

    product_id: str
    expected_qty: Decimal
    actual_qty: Decimal
    variance: Decimal
    unit_cost: Decimal
    variance_value: Decimal

    @property
    def has_baseline(self) -> bool:
        """True when the product has a positive expected quantity."""
        return self.expected_qty > ZERO

    @property
    def variance_percent(self) -> Decimal:
        """Variance as a percentage of expected quantity (0 without a baseline)."""
        if not self.has_baseline:
            return ZERO
        return self.variance / self.expected_qty * HUNDRED

    @property
    def is_shortage(self) -> bool:
        return self.variance < ZERO


@dataclass(frozen=True)
class VarianceResult:
    """
    Per-product and per-session variance for one count session.

    ``items`` is sorted by product id.
    """

    session_id: UUID
    items: tuple[ProductVariance, ...]
    total_expected_value: Decimal
    total_variance_value: Decimal
    variance_percent: Decimal

    def for_product(self, product_id: str) -> ProductVariance | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def total_actual_qty(self) -> Decimal:
        return sum((i.actual_qty for i in self.items), ZERO)


class VarianceAggregator:
    """
    Pure function aggregator for count variances.

    Contract:
        No I/O, no database access, fully deterministic.  Reads only the
        persisted count items on the session plus catalog data passed in.
    Guarantees:
        - actual_qty = sum of total_quantity across all areas.
        - expected_qty = par_levels[product] (0 if absent).
        - variance = actual_qty - expected_qty.
        - variance_value = variance * unit_cost (0 cost if absent).
        - Session totals are taken over products with expected_qty > 0:
          total_expected_value = sum(expected_qty * unit_cost),
          total_variance_value = sum(|variance_value|),
          variance_percent = total_variance_value / total_expected_value * 100.
        - Products in par_levels with a positive par but never counted
          appear with actual_qty = 0.
    Non-goals:
        - Does not check that the session is COMPLETED; the service gates
          authoritative runs, previews are allowed.
        - Does not round; presentation rounding belongs to the report.
    """

    @traced_engine(
        "variance_aggregator", "1.0",
        fingerprint_fields=("session", "par_levels", "unit_costs"),
    )
    def aggregate(
        self,
        session: CountSession,
        par_levels: Mapping[str, Decimal],
        unit_costs: Mapping[str, Decimal],
    ) -> VarianceResult:
        """
        Aggregate counted quantities into a VarianceResult.

        Preconditions:
            par_levels and unit_costs hold Decimal values (never float).

        Postconditions:
            One ProductVariance per product counted anywhere in the session
            or carrying a positive par level, sorted by product id.
        """
        actual: dict[str, Decimal] = {}
        for _, item in session.iter_items():
            actual[item.product_id] = actual.get(item.product_id, ZERO) + item.total_quantity

        product_ids = set(actual)
        product_ids.update(p for p, par in par_levels.items() if par and par > ZERO)

        items: list[ProductVariance] = []
        total_expected_value = ZERO
        total_variance_value = ZERO

        for product_id in sorted(product_ids):
            expected_qty = par_levels.get(product_id) or ZERO
            actual_qty = actual.get(product_id, ZERO)
            unit_cost = unit_costs.get(product_id) or ZERO
            variance = actual_qty - expected_qty
            variance_value = variance * unit_cost

            items.append(ProductVariance(
                product_id=product_id,
                expected_qty=expected_qty,
                actual_qty=actual_qty,
                variance=variance,
                unit_cost=unit_cost,
                variance_value=variance_value,
            ))

            # No-baseline products do not distort the session percentage.
            if expected_qty > ZERO:
                total_expected_value += expected_qty * unit_cost
                total_variance_value += abs(variance_value)

        if total_expected_value > ZERO:
            variance_percent = total_variance_value / total_expected_value * HUNDRED
        else:
            variance_percent = ZERO

        logger.info(
            "count_variance_aggregated",
            extra={
                "session_id": str(session.id),
                "product_count": len(items),
                "total_expected_value": str(total_expected_value),
                "total_variance_value": str(total_variance_value),
                "variance_percent": str(variance_percent),
            },
        )

        return VarianceResult(
            session_id=session.id,
            items=tuple(items),
            total_expected_value=total_expected_value,
            total_variance_value=total_variance_value,
            variance_percent=variance_percent,
        )
