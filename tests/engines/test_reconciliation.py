"""
Tests for ReconciliationCalculator (remaining expected quantity per area).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from count_engines.reconciliation import ReconciliationCalculator
from count_kernel.exceptions import AreaNotFoundError

PAR = Decimal("10")


class TestRemainingExpected:

    def setup_method(self):
        self.calculator = ReconciliationCalculator()

    def remaining(self, session, area, par=PAR, product_id="VODKA-750"):
        return self.calculator.remaining_expected(
            session=session, product_id=product_id, par_level=par, active_area_id=area.id,
        )

    def test_nothing_completed_full_par(self, session_builder):
        session = session_builder()
        assert self.remaining(session, session.areas[0]) == PAR

    def test_subtracts_completed_areas(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        """Bar counted 6 and closed: storage expects the remaining 4."""
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session

        assert self.remaining(session, storage) == Decimal("4")

    def test_open_areas_not_subtracted(self, session_builder, record):
        session = session_builder(area_names=("Bar", "Storage", "Cellar"))
        bar, storage, cellar = session.areas
        session = record(session, bar, "VODKA-750", 6)
        assert self.remaining(session, storage) == PAR

    def test_tenthed_quantities(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6, Decimal("0.4"))
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session
        assert self.remaining(session, storage) == Decimal("3.6")

    def test_never_negative(self, session_builder, record, lifecycle, deterministic_clock):
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 14)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session
        assert self.remaining(session, storage) == Decimal("0")

    @pytest.mark.parametrize("par", [None, Decimal("0"), Decimal("-1")])
    def test_absent_or_zero_par_is_zero(self, session_builder, par):
        session = session_builder()
        assert self.remaining(session, session.areas[0], par=par) == Decimal("0")

    def test_review_mode_excludes_active_area(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        """A completed active area shows the figure it had while counted."""
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session
        session = record(session, storage, "VODKA-750", 3)
        session = lifecycle.complete_area(session, storage.id, deterministic_clock.now()).session

        assert self.remaining(session, storage) == Decimal("4")
        assert self.remaining(session, bar) == Decimal("7")

    def test_monotonic_as_areas_complete(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        session = session_builder(area_names=("A", "B", "C", "D"))
        last = session.areas[-1]
        previous = self.remaining(session, last)
        for area in session.areas[:-1]:
            session = record(session, area, "VODKA-750", 2)
            session = lifecycle.complete_area(session, area.id, deterministic_clock.now()).session
            current = self.remaining(session, last)
            assert current <= previous
            previous = current
        assert previous == Decimal("4")

    def test_foreign_active_area_rejected(self, session_builder):
        with pytest.raises(AreaNotFoundError):
            self.calculator.remaining_expected(
                session=session_builder(),
                product_id="VODKA-750",
                par_level=PAR,
                active_area_id=uuid4(),
            )

    def test_trace_emitted(self, session_builder, captured_logs):
        session = session_builder()
        self.remaining(session, session.areas[0])
        traces = [r for r in captured_logs() if r["message"] == "COUNT_ENGINE_TRACE"]
        assert traces
        assert traces[0]["engine_name"] == "reconciliation"
        assert len(traces[0]["input_fingerprint"]) == 16

    def test_trace_fingerprint_follows_session_state(
        self, session_builder, record, lifecycle, deterministic_clock, captured_logs,
    ):
        session = session_builder(area_names=("Behind Bar", "Back Bar", "Liquor Storage"))
        bar, back_bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        closed = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session

        self.remaining(session, storage)
        self.remaining(session, storage)
        self.remaining(closed, storage)

        digests = [
            r["input_fingerprint"] for r in captured_logs()
            if r["message"] == "COUNT_ENGINE_TRACE" and r["engine_name"] == "reconciliation"
        ]
        assert digests[0] == digests[1]
        assert digests[2] != digests[0]


class TestExpectedTargets:

    def test_targets_for_every_par_product(
        self, session_builder, record, lifecycle, deterministic_clock,
    ):
        calculator = ReconciliationCalculator()
        session = session_builder()
        bar, storage = session.areas
        session = record(session, bar, "VODKA-750", 6)
        session = record(session, bar, "LAGER-CASE", 1)
        session = lifecycle.complete_area(session, bar.id, deterministic_clock.now()).session

        targets = calculator.expected_targets(
            session=session,
            par_levels={"VODKA-750": Decimal("10"), "LAGER-CASE": Decimal("4")},
            active_area_id=storage.id,
        )
        assert targets == {"LAGER-CASE": Decimal("3"), "VODKA-750": Decimal("4")}
        assert list(targets) == ["LAGER-CASE", "VODKA-750"]
