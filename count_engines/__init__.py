"""
Module: count_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure count
    calculation modules.  This is the import surface for count_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import count_kernel (and sibling engine modules).
    MUST NOT import count_services or count_config.

Invariants enforced:
    - Purity: engines never read the clock.  Timestamps are passed in by
      the caller.
    - Decimal-only arithmetic for quantities and values.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from count_engines import CountLifecycle, ReconciliationCalculator
    from count_engines import VarianceAggregator, build_count_report
"""

from count_engines.adjustment import StockAdjustment, build_adjustments
from count_engines.lifecycle import (
    AreaCompletion,
    CountLifecycle,
    current_area,
    summarize,
)
from count_engines.reconciliation import ReconciliationCalculator
from count_engines.report import (
    AreaSection,
    CountReport,
    CountSummary,
    SignificanceThresholds,
    SignificantVariance,
    build_count_report,
)
from count_engines.tracer import compute_input_fingerprint, traced_engine
from count_engines.variance import ProductVariance, VarianceAggregator, VarianceResult

__all__ = [
    "AreaCompletion",
    "AreaSection",
    "CountLifecycle",
    "CountReport",
    "CountSummary",
    "ProductVariance",
    "ReconciliationCalculator",
    "SignificanceThresholds",
    "SignificantVariance",
    "StockAdjustment",
    "VarianceAggregator",
    "VarianceResult",
    "build_adjustments",
    "build_count_report",
    "compute_input_fingerprint",
    "current_area",
    "summarize",
    "traced_engine",
]
