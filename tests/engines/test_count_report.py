"""
Tests for the count report builder and the stock adjustment builder.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from count_engines.adjustment import StockAdjustment, build_adjustments
from count_engines.report import SignificanceThresholds, build_count_report
from count_engines.variance import ProductVariance, VarianceAggregator

PAR = {"VODKA-750": Decimal("10"), "LAGER-CASE": Decimal("4"), "GIN-750": Decimal("20")}
COSTS = {"VODKA-750": Decimal("18.50"), "LAGER-CASE": Decimal("24.00"), "GIN-750": Decimal("21.00")}


def line(expected, actual):
    variance = Decimal(actual) - Decimal(expected)
    return ProductVariance(
        product_id="P",
        expected_qty=Decimal(expected),
        actual_qty=Decimal(actual),
        variance=variance,
        unit_cost=Decimal("1"),
        variance_value=variance,
    )


class TestSignificanceThresholds:

    def setup_method(self):
        self.thresholds = SignificanceThresholds(quantity=Decimal("1"), ratio=Decimal("0.10"))

    @pytest.mark.parametrize(
        "expected,actual,significant",
        [
            ("10", "9", False),     # |1| not > 1, 1/10 not > 0.10
            ("10", "8.5", True),    # |1.5| > 1
            ("20", "19", False),    # 1/20 = 0.05
            ("5", "4.4", True),     # 0.6/5 = 0.12
            ("0", "0.5", True),     # 0.5/max(0, 1) = 0.5
            ("4", "4", False),
        ],
    )
    def test_quantity_or_ratio(self, expected, actual, significant):
        assert self.thresholds.is_significant(line(expected, actual)) is significant


class TestBuildCountReport:

    def build(self, session, **kwargs):
        variance = VarianceAggregator().aggregate(
            session=session, par_levels=PAR, unit_costs=COSTS,
        )
        return build_count_report(session=session, variance=variance, unit_costs=COSTS, **kwargs)

    def test_progress_and_area_sections(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder(area_names=("Behind Bar", "Liquor Storage", "Beer Cooler", "Prep Area"))
        bar, storage, cooler, prep = session.areas
        session = record(session, bar, "VODKA-750", 2, Decimal("0.5"))
        session = record(session, bar, "GIN-750", 1)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session
        session = record(session, storage, "VODKA-750", 4)

        report = self.build(session)
        assert report.summary.total_areas == 4
        assert report.summary.areas_completed == 1
        assert report.summary.progress_percent == Decimal("25")
        assert report.summary.total_items == 3
        assert [s.name for s in report.areas] == ["Behind Bar", "Liquor Storage", "Beer Cooler", "Prep Area"]
        assert [i.product_id for i in report.areas[0].items] == ["GIN-750", "VODKA-750"]
        assert report.areas[0].subtotal == Decimal("2.5") * Decimal("18.50") + Decimal("21.00")
        assert report.areas[2].items == ()
        assert report.summary.total_value == sum((s.subtotal for s in report.areas), Decimal("0"))

    def test_significant_variances_flagged_at_session_level(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder()
        bar, storage = session.areas
        # Vodka split across areas: 6 + 3.5 against 10 -> -0.5, not significant
        session = record(session, bar, "VODKA-750", 6)
        session = record(session, storage, "VODKA-750", 3, Decimal("0.5"))
        # Gin 19 against 20 -> 1/20, not significant
        session = record(session, bar, "GIN-750", 19)
        # Lager 2 against 4 -> significant; counted in storage only
        session = record(session, storage, "LAGER-CASE", 2)
        for area in session.areas:
            session = lifecycle.complete_area(session, area.id, deterministic_clock.now()).session

        report = self.build(session)
        flagged = {f.variance.product_id: f for f in report.significant_variances}
        assert set(flagged) == {"LAGER-CASE"}
        assert flagged["LAGER-CASE"].area_names == ("Liquor Storage",)
        assert flagged["LAGER-CASE"].variance.variance == Decimal("-2")

    def test_uncounted_par_product_flagged_without_areas(
        self, session_builder, lifecycle, deterministic_clock,
    ):
        session = session_builder(area_names=("Walk-in Cooler",))
        session = lifecycle.complete_area(session, session.areas[0].id, deterministic_clock.now()).session
        report = self.build(session)
        assert {f.variance.product_id for f in report.significant_variances} == set(PAR)
        assert all(f.area_names == () for f in report.significant_variances)

    def test_value_rounding(self, session_builder, record):
        session = session_builder(area_names=("A", "B", "C"))
        session = record(session, session.areas[0], "VODKA-750", 0, Decimal("0.3"))
        report = self.build(session, value_places=2)
        assert report.summary.total_value == Decimal("5.55")
        assert report.summary.progress_percent == Decimal("0.00")

    def test_currency_labels_summary(self, session_builder):
        session = session_builder()
        assert self.build(session).summary.currency == "USD"
        assert self.build(session, currency="GBP").summary.currency == "GBP"

    def test_no_areas(self, session_builder):
        report = self.build(session_builder(area_names=()))
        assert report.summary.progress_percent == Decimal("0")
        assert report.areas == ()

    def test_mismatched_variance_rejected(self, session_builder):
        first, second = session_builder(), session_builder()
        variance = VarianceAggregator().aggregate(session=first, par_levels=PAR, unit_costs=COSTS)
        with pytest.raises(ValueError):
            build_count_report(session=second, variance=variance, unit_costs=COSTS)


class TestBuildAdjustments:

    def test_one_adjustment_per_nonzero_variance(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        session = record(session, storage, "VODKA-750", 3)
        session = record(session, bar, "LAGER-CASE", 4)
        session = record(session, bar, "GIN-750", 22)
        session = record(session, bar, "LIME", 15)
        for area in session.areas:
            session = lifecycle.complete_area(session, area.id, deterministic_clock.now()).session

        variance = VarianceAggregator().aggregate(session=session, par_levels=PAR, unit_costs=COSTS)
        adjustments = build_adjustments(session, variance)

        by_product = {a.product_id: a for a in adjustments}
        assert set(by_product) == {"GIN-750", "LIME", "VODKA-750"}
        assert by_product["VODKA-750"] == StockAdjustment(
            session_id=session.id,
            location_id=session.location_id,
            product_id="VODKA-750",
            expected_qty=Decimal("10"),
            counted_qty=Decimal("9"),
            delta=Decimal("-1"),
            value_delta=Decimal("-18.50"),
        )
        assert by_product["GIN-750"].delta == Decimal("2")
        assert by_product["LIME"].value_delta == Decimal("0")
        assert [a.product_id for a in adjustments] == sorted(by_product)

    def test_exact_count_needs_no_adjustment(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder(area_names=("A",))
        session = record(session, session.areas[0], "LAGER-CASE", 4)
        session = lifecycle.complete_area(session, session.areas[0].id, deterministic_clock.now()).session
        variance = VarianceAggregator().aggregate(
            session=session, par_levels={"LAGER-CASE": Decimal("4")}, unit_costs=COSTS,
        )
        assert build_adjustments(session, variance) == ()

    def test_foreign_variance_rejected(self, session_builder):
        variance = VarianceAggregator().aggregate(
            session=session_builder(), par_levels={}, unit_costs={},
        )
        with pytest.raises(ValueError):
            build_adjustments(session_builder(), variance)
