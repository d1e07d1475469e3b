"""
Tests for priority request cycle reconstruction.

Tests verify the check-in / check-out state machine, inner interval
resolution and report-window handling.
"""

import random

import pytest

from tspm.analysis.cycles import Cycle, Marker, MarkerOffset, cycles_to_frame, reconstruct
from tspm.analysis.events import EventCode
from tspm.analysis.metrics import derive

IN = EventCode.CHECK_IN
OUT = EventCode.CHECK_OUT
SVC_START = EventCode.SERVICE_START
SVC_END = EventCode.SERVICE_END


@pytest.fixture
def busy_stream(make_event):
    """Two locations, several request numbers, markers and noise."""
    return [
        make_event(IN, 0, tsp_number=1),
        make_event(SVC_START, 4, tsp_number=1),
        make_event(EventCode.EARLY_GREEN, 4, tsp_number=1),
        make_event(SVC_END, 12, tsp_number=1),
        make_event(OUT, 15, tsp_number=1),
        make_event(IN, 5, tsp_number=2),
        make_event(IN, 25, tsp_number=2),
        make_event(OUT, 40, tsp_number=2),
        make_event(IN, 10, tsp_number=1, location="B"),
        make_event(EventCode.EXTEND_GREEN, 18, tsp_number=1, location="B"),
        make_event(OUT, 30, tsp_number=1, location="B"),
        make_event(125, 20, tsp_number=1),
        make_event(IN, 50, tsp_number=3),
    ]


class TestConcreteScenarios:
    """Tests for the documented reference scenarios."""

    def test_serviced_request(self, make_event, at):
        """Open, service start, service end, close."""
        events = [
            make_event(IN, 0),
            make_event(SVC_START, 5),
            make_event(SVC_END, 15),
            make_event(OUT, 20),
        ]
        cycles = reconstruct(events, at(0), at(20))

        assert len(cycles) == 1
        cycle = cycles[0]
        assert cycle.check_in == at(0)
        assert cycle.check_out == at(20)
        assert cycle.service_start == at(5)
        assert cycle.service_end == at(15)
        assert not cycle.forced_closed
        assert not cycle.incomplete

    def test_repeated_open_without_close(self, make_event, at):
        """Second open force-closes the first; the second is incomplete."""
        events = [make_event(IN, 0), make_event(IN, 10)]
        cycles = reconstruct(events, at(0), at(10))

        assert len(cycles) == 2
        first, second = cycles
        assert first.check_in == at(0)
        assert first.check_out == at(10)
        assert first.forced_closed
        assert not first.incomplete
        assert second.check_in == at(10)
        assert second.check_out == at(10)
        assert second.incomplete
        assert not second.forced_closed


class TestProperties:
    """Tests for order, repeatability and window guarantees."""

    def test_idempotent(self, busy_stream, at):
        """Reconstructing twice gives identical cycles."""
        ordered = sorted(busy_stream)
        first = reconstruct(ordered, at(0), at(60))
        second = reconstruct(ordered, at(0), at(60))
        assert first == second

    def test_order_insensitive(self, busy_stream, at):
        """Shuffled input reconstructs to the same cycles."""
        expected = reconstruct(sorted(busy_stream), at(0), at(60))
        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(busy_stream)
            rng.shuffle(shuffled)
            assert reconstruct(shuffled, at(0), at(60)) == expected

    def test_window_containment(self, busy_stream, at):
        """Every cycle is ordered and touches the window."""
        start, end = at(20), at(45)
        cycles = reconstruct(busy_stream, start, end)
        assert cycles
        for c in cycles:
            assert c.check_in <= c.check_out
            assert c.check_out >= start and c.check_in <= end

    def test_output_sorted_by_check_in(self, busy_stream, at):
        """Cycles come back ordered by check-in."""
        cycles = reconstruct(busy_stream, at(0), at(60))
        check_ins = [c.check_in for c in cycles]
        assert check_ins == sorted(check_ins)

    def test_keys_are_independent(self, busy_stream, at):
        """Same request number at another location is its own cycle."""
        cycles = reconstruct(busy_stream, at(0), at(60))
        keys = {c.key for c in cycles}
        assert ("A", 1) in keys
        assert ("B", 1) in keys

    def test_overlap_policy(self, make_event, at):
        """An open at t2 closes the open cycle from t1 at t2."""
        events = [make_event(IN, 3), make_event(IN, 8), make_event(OUT, 12)]
        cycles = reconstruct(events, at(0), at(20))
        assert cycles[0].check_out == at(8)
        assert cycles[0].forced_closed
        assert cycles[1].check_out == at(12)
        assert not cycles[1].forced_closed

    def test_same_instant_opens(self, make_event, at):
        """Two opens at one instant: the first is force-closed with zero length."""
        events = [make_event(IN, 5), make_event(IN, 5), make_event(OUT, 9)]
        cycles = reconstruct(events, at(0), at(10))

        assert len(cycles) == 2
        first, second = cycles
        assert first.forced_closed
        assert first.check_in == first.check_out == at(5)
        assert derive(first).request_duration_sec == 0.0
        assert derive(first).request_no_service_sec == 0.0
        assert second.check_in == at(5)
        assert second.check_out == at(9)
        assert not second.forced_closed


class TestInnerInterval:
    """Tests for service start / service end resolution."""

    def test_no_service_codes(self, make_event, at):
        """Without 118/119 there is no inner interval."""
        cycles = reconstruct([make_event(IN, 0), make_event(OUT, 9)], at(0), at(10))
        assert cycles[0].service_start is None
        assert cycles[0].service_end is None
        assert not cycles[0].has_service

    def test_start_without_end_runs_to_check_out(self, make_event, at):
        """A service start with no end is closed at check-out."""
        events = [make_event(IN, 0), make_event(SVC_START, 3), make_event(OUT, 9)]
        cycle = reconstruct(events, at(0), at(10))[0]
        assert cycle.service_start == at(3)
        assert cycle.service_end == at(9)

    def test_end_without_start_discarded(self, make_event, at):
        """A service end with no start yields no inner interval."""
        events = [make_event(IN, 0), make_event(SVC_END, 3), make_event(OUT, 9)]
        cycle = reconstruct(events, at(0), at(10))[0]
        assert cycle.service_start is None
        assert cycle.service_end is None

    def test_first_occurrence_wins(self, make_event, at):
        """Repeated 118/119 inside one cycle keep the first value."""
        events = [
            make_event(IN, 0),
            make_event(SVC_START, 2),
            make_event(SVC_START, 4),
            make_event(SVC_END, 6),
            make_event(SVC_END, 8),
            make_event(OUT, 10),
        ]
        cycle = reconstruct(events, at(0), at(10))[0]
        assert cycle.service_start == at(2)
        assert cycle.service_end == at(6)

    def test_end_before_start_falls_back_to_check_out(self, make_event, at):
        """An end earlier than the start is ignored."""
        events = [
            make_event(IN, 0),
            make_event(SVC_END, 2),
            make_event(SVC_START, 4),
            make_event(OUT, 10),
        ]
        cycle = reconstruct(events, at(0), at(10))[0]
        assert cycle.service_start == at(4)
        assert cycle.service_end == at(10)

    def test_trailing_service_end_attaches(self, make_event, at):
        """A 119 at the check-out instant belongs to the closed cycle."""
        events = [
            make_event(IN, 0),
            make_event(SVC_START, 5),
            make_event(SVC_END, 20),
            make_event(OUT, 20),
        ]
        cycle = reconstruct(events, at(0), at(30))[0]
        assert cycle.service_end == at(20)

    def test_trailing_service_end_within_grace(self, make_event, at):
        """A 119 shortly after check-out still attaches."""
        events = [
            make_event(IN, 0),
            make_event(SVC_START, 5),
            make_event(OUT, 20),
            make_event(SVC_END, 20.5),
        ]
        cycle = reconstruct(events, at(0), at(30))[0]
        assert cycle.service_end == at(20.5)

    def test_trailing_service_end_outside_grace(self, make_event, at):
        """A late 119 is ignored; the start runs to check-out."""
        events = [
            make_event(IN, 0),
            make_event(SVC_START, 5),
            make_event(OUT, 20),
            make_event(SVC_END, 25),
        ]
        cycle = reconstruct(events, at(0), at(30))[0]
        assert cycle.service_end == at(20)

    def test_markers_collected(self, make_event, at):
        """Marker codes are kept in time order with their kind."""
        events = [
            make_event(IN, 0),
            make_event(EventCode.EXTEND_GREEN, 6),
            make_event(EventCode.EARLY_GREEN, 2),
            make_event(OUT, 10),
        ]
        cycle = reconstruct(events, at(0), at(10))[0]
        assert [m.kind for m in cycle.markers] == ["early_green", "extend_green"]
        assert [o.seconds for o in cycle.marker_offsets] == [2.0, 6.0]

    def test_marker_after_check_out_excluded(self, at):
        """Offsets past check-out are left out of both public views."""
        cycle = Cycle(
            location="A", tsp_number=1,
            check_in=at(0), check_out=at(10),
            markers=(Marker("early_green", at(4)), Marker("extend_green", at(12))),
        )
        assert cycle.marker_offsets == [MarkerOffset("early_green", 4.0)]
        assert derive(cycle).marker_offsets == cycle.marker_offsets


class TestWindowAndNoise:
    """Tests for report-window bounds and messy input."""

    def test_empty_input(self, at):
        """Zero events gives zero cycles."""
        assert reconstruct([], at(0), at(10)) == []

    def test_none_rejected(self, at):
        """None is a contract violation."""
        with pytest.raises(TypeError):
            reconstruct(None, at(0), at(10))

    def test_inverted_window_rejected(self, make_event, at):
        """report_end before report_start raises ValueError."""
        with pytest.raises(ValueError):
            reconstruct([make_event(IN, 0)], at(10), at(0))

    def test_unknown_codes_ignored(self, make_event, at):
        """Codes outside the vocabulary do not affect cycles."""
        events = [make_event(IN, 0), make_event(125, 1), make_event(OUT, 5)]
        cycles = reconstruct(events, at(0), at(10))
        assert len(cycles) == 1
        assert cycles[0].markers == ()

    def test_stray_events_without_open(self, make_event, at):
        """Close and marker events with no open cycle are skipped."""
        events = [
            make_event(OUT, 1),
            make_event(EventCode.EARLY_GREEN, 2),
            make_event(SVC_START, 3),
        ]
        assert reconstruct(events, at(0), at(10)) == []

    def test_cycle_ending_before_window_dropped(self, make_event, at):
        """A cycle entirely before the window is not reported."""
        events = [make_event(IN, 0), make_event(OUT, 5), make_event(IN, 20)]
        cycles = reconstruct(events, at(10), at(30))
        assert len(cycles) == 1
        assert cycles[0].check_in == at(20)

    def test_cycle_starting_after_window_dropped(self, make_event, at):
        """Events after the window end produce no cycle."""
        events = [make_event(IN, 40), make_event(OUT, 45)]
        assert reconstruct(events, at(0), at(30)) == []

    def test_check_in_before_window_kept(self, make_event, at):
        """A request spanning the window start is reported."""
        events = [make_event(IN, -30), make_event(OUT, 5)]
        cycles = reconstruct(events, at(0), at(10))
        assert len(cycles) == 1
        assert cycles[0].check_in == at(-30)

    def test_open_after_window_end_dropped(self, make_event, at):
        """An incomplete cycle whose check-in passes the window end is inverted."""
        events = [make_event(IN, 15)]
        assert reconstruct(events, at(0), at(10)) == []


class TestCyclesToFrame:
    """Tests for the tabular cycle view."""

    def test_columns(self, make_event, at):
        """One row per cycle with the marker count."""
        events = [
            make_event(IN, 0),
            make_event(EventCode.EARLY_GREEN, 1),
            make_event(OUT, 5),
        ]
        df = cycles_to_frame(reconstruct(events, at(0), at(10)))
        assert len(df) == 1
        assert df.loc[0, "marker_count"] == 1
        assert df.loc[0, "location"] == "A"

    def test_empty(self):
        """No cycles gives an empty frame with the same schema."""
        df = cycles_to_frame([])
        assert df.empty
        assert "check_in" in df.columns


def test_cycle_is_immutable(at):
    cycle = Cycle(location="A", tsp_number=1, check_in=at(0), check_out=at(5))
    with pytest.raises(AttributeError):
        cycle.check_out = at(6)
