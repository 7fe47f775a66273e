"""
count_engines.report -- Count report and progress summary.

Responsibility:
    Build the read model a supervisor looks at while and after a count runs:
    progress through the areas, per-area item lists with value subtotals,
    the session value, and the product variances large enough to need a
    second look.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Composes
    ``VarianceAggregator`` output; consumed by ``CountService.report``.

Invariants enforced:
    - Significance uses session-level variance (all areas summed), so a
      product split across areas is judged once, against its full par.
    - A variance is significant when |variance| > quantity threshold OR
      |variance| / max(expected_qty, 1) > ratio threshold.
    - Replay safety: output depends only on the inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping
from uuid import UUID

from count_kernel.domain.count import (
    ONE,
    ZERO,
    AreaStatus,
    CountItem,
    CountSession,
    CountStatus,
)
from count_engines.tracer import traced_engine
from count_engines.variance import HUNDRED, ProductVariance, VarianceResult


@dataclass(frozen=True)
class SignificanceThresholds:
    """When is a product variance worth flagging."""

    quantity: Decimal = Decimal("1")
    ratio: Decimal = Decimal("0.1")

    def is_significant(self, line: ProductVariance) -> bool:
        magnitude = abs(line.variance)
        if magnitude > self.quantity:
            return True
        return magnitude / max(line.expected_qty, ONE) > self.ratio


@dataclass(frozen=True)
class AreaSection:
    """One area's items and their value subtotal."""

    area_id: UUID
    name: str
    status: AreaStatus
    items: tuple[CountItem, ...]
    subtotal: Decimal


@dataclass(frozen=True)
class SignificantVariance:
    """A flagged product variance with the areas it was found in."""

    variance: ProductVariance
    area_names: tuple[str, ...]


@dataclass(frozen=True)
class CountSummary:
    """Money figures are in ``currency``."""

    total_items: int
    total_value: Decimal
    currency: str
    areas_completed: int
    total_areas: int
    progress_percent: Decimal


@dataclass(frozen=True)
class CountReport:
    session_id: UUID
    status: CountStatus
    summary: CountSummary
    areas: tuple[AreaSection, ...]
    significant_variances: tuple[SignificantVariance, ...]
    variance: VarianceResult


@traced_engine(
    "count_report", "1.0",
    fingerprint_fields=("session", "variance", "unit_costs"),
)
def build_count_report(
    session: CountSession,
    variance: VarianceResult,
    unit_costs: Mapping[str, Decimal],
    thresholds: SignificanceThresholds | None = None,
    value_places: int | None = None,
    currency: str = "USD",
) -> CountReport:
    """
    Assemble a CountReport for a session.

    ``variance`` must have been aggregated from the same session.  The
    report can be built for a session still in progress; the variance
    figures are then a preview.

    When ``value_places`` is given, money totals and the progress
    percentage are rounded half-up to that many places.  Variance lines
    are left exact.
    ``currency`` labels the summary money figures; no conversion is done.
    """
    if variance.session_id != session.id:
        raise ValueError(
            f"Variance result for session {variance.session_id} "
            f"does not belong to session {session.id}"
        )
    thresholds = thresholds or SignificanceThresholds()

    def rounded(value: Decimal) -> Decimal:
        if value_places is None:
            return value
        return value.quantize(Decimal(1).scaleb(-value_places), rounding=ROUND_HALF_UP)

    sections: list[AreaSection] = []
    total_items = 0
    total_value = ZERO
    areas_by_product: dict[str, list[str]] = {}

    for area in session.areas:
        items = tuple(area.items[p] for p in sorted(area.items))
        subtotal = sum(
            (i.total_quantity * unit_costs.get(i.product_id, ZERO) for i in items),
            ZERO,
        )
        sections.append(AreaSection(
            area_id=area.id,
            name=area.name,
            status=area.status,
            items=items,
            subtotal=rounded(subtotal),
        ))
        total_items += len(items)
        total_value += subtotal
        for item in items:
            areas_by_product.setdefault(item.product_id, []).append(area.name)

    total_areas = len(session.areas)
    completed = session.completed_area_count
    progress = (
        Decimal(completed) / Decimal(total_areas) * HUNDRED if total_areas else ZERO
    )

    flagged = tuple(
        SignificantVariance(
            variance=line,
            area_names=tuple(areas_by_product.get(line.product_id, ())),
        )
        for line in variance.items
        if thresholds.is_significant(line)
    )

    return CountReport(
        session_id=session.id,
        status=session.status,
        summary=CountSummary(
            total_items=total_items,
            total_value=rounded(total_value),
            currency=currency,
            areas_completed=completed,
            total_areas=total_areas,
            progress_percent=rounded(progress),
        ),
        areas=tuple(sections),
        significant_variances=flagged,
        variance=variance,
    )
