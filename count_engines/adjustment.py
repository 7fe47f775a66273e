"""
count_engines.adjustment -- Stock adjustments from an approved count.

Responsibility:
    Translate a session's variance into stock-movement records (counted vs
    expected delta per product) for the inventory ledger collaborator.  The
    ledger owns how those records are stored; this module only builds them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``CountService.approve``.

Invariants enforced:
    - One adjustment per product whose variance is non-zero.
    - delta == counted_qty - expected_qty == ProductVariance.variance.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from count_kernel.domain.count import ZERO, CountSession
from count_engines.variance import VarianceResult

ADJUSTMENT_REASON = "physical_count"


@dataclass(frozen=True)
class StockAdjustment:
    """A counted-vs-expected correction for one product at one location."""

    session_id: UUID
    location_id: str
    product_id: str
    expected_qty: Decimal
    counted_qty: Decimal
    delta: Decimal
    value_delta: Decimal
    reason: str = ADJUSTMENT_REASON


def build_adjustments(
    session: CountSession,
    variance: VarianceResult,
) -> tuple[StockAdjustment, ...]:
    """Build adjustments for every non-zero product variance, in product order."""
    if variance.session_id != session.id:
        raise ValueError(
            f"Variance result for session {variance.session_id} "
            f"does not belong to session {session.id}"
        )
    return tuple(
        StockAdjustment(
            session_id=session.id,
            location_id=session.location_id,
            product_id=line.product_id,
            expected_qty=line.expected_qty,
            counted_qty=line.actual_qty,
            delta=line.variance,
            value_delta=line.variance_value,
        )
        for line in variance.items
        if line.variance != ZERO
    )
