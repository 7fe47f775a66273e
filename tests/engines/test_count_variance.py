"""
Tests for VarianceAggregator.

Covers:
- Cross-area conservation of counted quantities
- Products without a par level (no baseline)
- Empty areas against a non-empty par list
- Session percentage and its zero-denominator case
- Determinism
"""

from decimal import Decimal

import pytest

from count_engines.variance import VarianceAggregator

PAR = {"VODKA-750": Decimal("10"), "LAGER-CASE": Decimal("4")}
COSTS = {"VODKA-750": Decimal("18.50"), "LAGER-CASE": Decimal("24.00"), "LIME": Decimal("0.25")}


def finish(session, lifecycle, clock):
    for area in session.areas:
        if not area.is_completed:
            session = lifecycle.complete_area(session, area.id, clock.now()).session
    return session


class TestVarianceAggregator:

    def setup_method(self):
        self.aggregator = VarianceAggregator()

    def aggregate(self, session, par=PAR, costs=COSTS):
        return self.aggregator.aggregate(session=session, par_levels=par, unit_costs=costs)

    def test_split_product_summed_across_areas(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        """Bar 6 + Storage 3 against par 10: actual 9, variance -1."""
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session
        session = record(session, storage, "VODKA-750", 3)
        session = finish(session, lifecycle, deterministic_clock)

        vodka = self.aggregate(session).for_product("VODKA-750")
        assert vodka.actual_qty == Decimal("9")
        assert vodka.expected_qty == Decimal("10")
        assert vodka.variance == Decimal("-1")
        assert vodka.variance_value == Decimal("-18.50")
        assert vodka.is_shortage

    def test_no_par_product_has_no_baseline(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder()
        bar = session.areas[0]
        session = record(session, bar, "VODKA-750", 10)
        session = record(session, bar, "LAGER-CASE", 4)
        session = record(session, bar, "LIME", 30)
        session = finish(session, lifecycle, deterministic_clock)

        result = self.aggregate(session)
        lime = result.for_product("LIME")
        assert lime.expected_qty == Decimal("0")
        assert lime.variance == Decimal("30")
        assert lime.has_baseline is False
        assert lime.variance_percent == Decimal("0")
        # Everything with a par matched exactly; LIME must not move the totals.
        assert result.total_expected_value == Decimal("10") * Decimal("18.50") + Decimal("4") * Decimal("24.00")
        assert result.total_variance_value == Decimal("0")
        assert result.variance_percent == Decimal("0")

    def test_empty_single_area_session(self, session_builder, lifecycle, deterministic_clock):
        session = session_builder(area_names=("Walk-in Cooler",))
        session = finish(session, lifecycle, deterministic_clock)

        result = self.aggregate(session)
        assert [p.product_id for p in result.items] == ["LAGER-CASE", "VODKA-750"]
        for line in result.items:
            assert line.actual_qty == Decimal("0")
            assert line.variance == -PAR[line.product_id]
        assert result.variance_percent == Decimal("100")

    def test_session_percentage(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder()
        bar = session.areas[0]
        session = record(session, bar, "VODKA-750", 8)
        session = record(session, bar, "LAGER-CASE", 5)
        session = finish(session, lifecycle, deterministic_clock)

        result = self.aggregate(session)
        expected_value = Decimal("185.00") + Decimal("96.00")
        variance_value = Decimal("37.00") + Decimal("24.00")
        assert result.total_expected_value == expected_value
        assert result.total_variance_value == variance_value
        assert result.variance_percent == variance_value / expected_value * Decimal("100")

    def test_zero_expected_value_gives_zero_percent(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder()
        session = record(session, session.areas[0], "LIME", 12)
        session = finish(session, lifecycle, deterministic_clock)

        result = self.aggregate(session, par={}, costs=COSTS)
        assert result.total_expected_value == Decimal("0")
        assert result.variance_percent == Decimal("0")

    def test_missing_cost_is_zero_value(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder()
        session = record(session, session.areas[0], "VODKA-750", 7)
        session = finish(session, lifecycle, deterministic_clock)

        vodka = self.aggregate(session, costs={}).for_product("VODKA-750")
        assert vodka.unit_cost == Decimal("0")
        assert vodka.variance_value == Decimal("0")

    def test_conservation(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder(area_names=("A", "B", "C"))
        quantities = [(0, "VODKA-750", 2, "0.5"), (1, "VODKA-750", 1, "0.3"), (2, "LIME", 4, "0")]
        for idx, product, full, partial in quantities:
            session = record(session, session.areas[idx], product, full, Decimal(partial))
        session = finish(session, lifecycle, deterministic_clock)

        result = self.aggregate(session)
        counted = sum((item.total_quantity for _, item in session.iter_items()), Decimal("0"))
        assert result.total_actual_qty == counted

    def test_idempotent(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder()
        session = record(session, session.areas[0], "VODKA-750", 6, Decimal("0.7"))
        session = finish(session, lifecycle, deterministic_clock)

        assert self.aggregate(session) == self.aggregate(session)

    def test_aggregation_logged(self, session_builder, lifecycle, deterministic_clock, captured_logs):
        session = finish(session_builder(), lifecycle, deterministic_clock)
        self.aggregate(session)
        records = [r for r in captured_logs() if r["message"] == "count_variance_aggregated"]
        assert len(records) == 1
        assert records[0]["product_count"] == 2

    @pytest.mark.parametrize("par_value", [Decimal("0"), None])
    def test_zero_par_entry_not_listed_unless_counted(
        self, session_builder, lifecycle, deterministic_clock, par_value,
    ):
        session = finish(session_builder(), lifecycle, deterministic_clock)
        result = self.aggregate(session, par={"GIN-750": par_value}, costs={})
        assert result.items == ()
