"""
count_engines.reconciliation -- Remaining expected quantity per area.

Responsibility:
    A product kept in several storage areas (a spirit behind the bar and in
    the back room) shares ONE par level for the whole session.  As areas are
    completed, the quantity already found is subtracted from the par level
    so the next area is not expected to hold the full par again.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no caching.
    Consumed by ``CountService.remaining_expected`` / ``expected_targets``,
    which feed the recording surface with the target for the active area.

Invariants enforced:
    - remaining_expected = max(0, par_level - counted in COMPLETED areas
      other than the active area).  Never negative.
    - Monotonic: for a fixed par level, completing more areas can only
      lower (or keep) the remaining expected quantity.
    - Review mode: when the active area is itself COMPLETED, it is still
      excluded from the subtraction, reproducing the figure that was live
      while it was being counted.
    - Replay safety: identical inputs produce identical outputs; computed
      fresh on every call.

Failure modes:
    - AreaNotFoundError if active_area_id is not owned by the session.

Usage:
    calculator = ReconciliationCalculator()
    target = calculator.remaining_expected(
        session=session, product_id="VODKA-750",
        par_level=Decimal("10"), active_area_id=storage.id,
    )
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping
from uuid import UUID

from count_kernel.domain.count import ZERO, CountSession
from count_engines.tracer import traced_engine


class ReconciliationCalculator:
    """
    Pure function calculator for area-level expected quantities.

    Contract:
        No I/O, no database access, fully deterministic.  The session and
        the par level are passed in; nothing is remembered between calls.
    Non-goals:
        - The figure is advisory (a display target).  Authoritative variance
          comes from ``count_engines.variance.VarianceAggregator``.
    """

    def counted_in_completed_areas(
        self,
        session: CountSession,
        product_id: str,
        active_area_id: UUID,
    ) -> Decimal:
        """Total counted for a product in COMPLETED areas other than the active one."""
        session.area(active_area_id)
        total = ZERO
        for area in session.areas:
            if area.is_completed and area.id != active_area_id:
                total += area.quantity_of(product_id)
        return total

    @traced_engine(
        "reconciliation", "1.0",
        fingerprint_fields=("session", "product_id", "par_level", "active_area_id"),
    )
    def remaining_expected(
        self,
        session: CountSession,
        product_id: str,
        par_level: Decimal | None,
        active_area_id: UUID,
    ) -> Decimal:
        """
        Expected quantity still to be found in the active area.

        Formula: max(0, par_level - counted_in_completed_areas)

        An absent or zero par level yields 0.
        """
        already = self.counted_in_completed_areas(session, product_id, active_area_id)
        if not par_level or par_level <= ZERO:
            return ZERO
        return max(ZERO, par_level - already)

    @traced_engine(
        "reconciliation", "1.0",
        fingerprint_fields=("session", "par_levels", "active_area_id"),
    )
    def expected_targets(
        self,
        session: CountSession,
        par_levels: Mapping[str, Decimal],
        active_area_id: UUID,
    ) -> dict[str, Decimal]:
        """
        Remaining expected quantity for every product with a par level.

        Keys are returned in sorted product order.
        """
        return {
            product_id: self.remaining_expected(
                session=session,
                product_id=product_id,
                par_level=par_levels[product_id],
                active_area_id=active_area_id,
            )
            for product_id in sorted(par_levels)
        }
