"""Tests for the session event timeline."""

from conftest import CHUNK_DURATION_MS, T0, FakeClock

from recording_session_storage import EventTimeline
from recording_session_storage.timeline import SESSION_END, SESSION_START, start_marker


def make_timeline(clock: FakeClock) -> EventTimeline:
    return EventTimeline(CHUNK_DURATION_MS, clock=clock)


class TestStart:
    def test_start_records_marker(self, clock):
        timeline = make_timeline(clock)

        start_time = timeline.start("examA", "stud1")

        assert start_time == T0
        assert timeline.active is True
        assert [e.type for e in timeline.events] == [SESSION_START]
        assert timeline.events[0].offset_ms == 0

    def test_restart_resets_log(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        clock.advance(1000)
        timeline.append("tab_switch")

        clock.advance(1000)
        timeline.start("examB", "stud2")

        assert timeline.session_id == "examB"
        assert [e.type for e in timeline.events] == [SESSION_START]
        assert timeline.start_time == T0 + 2000

    def test_start_with_given_time_and_marker(self, clock):
        timeline = make_timeline(clock)
        marker = start_marker()
        clock.advance(5000)

        assert timeline.start("examA", "stud1", start_time=T0, marker=marker) == T0

        assert timeline.start_time == T0
        assert timeline.events == [marker]
        timeline.append("tab_switch")
        assert timeline.events[-1].offset_ms == 5000


class TestAppend:
    def test_append_when_inactive_is_noop(self, clock):
        timeline = make_timeline(clock)

        assert timeline.append("tab_switch") is None
        assert timeline.events == []

    def test_offset_from_session_start(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        clock.advance(650_000)

        event = timeline.append("tab_switch", {"url": "https://example.com"})

        assert event.offset_ms == 650_000
        assert event.details == {"url": "https://example.com"}
        assert timeline.events[-1] == event

    def test_clock_going_backwards_clamps_to_zero(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        clock.advance(-5000)

        assert timeline.append("tab_switch").offset_ms == 0

    def test_events_property_is_a_copy(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")

        timeline.events.clear()

        assert len(timeline.events) == 1


class TestEnd:
    def test_end_appends_marker_then_goes_inactive(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        clock.advance(3000)

        event = timeline.end()

        assert event.type == SESSION_END
        assert event.offset_ms == 3000
        assert timeline.active is False
        assert timeline.append("late") is None
        assert [e.type for e in timeline.events] == [SESSION_START, SESSION_END]

    def test_end_when_inactive_returns_none(self, clock):
        timeline = make_timeline(clock)
        assert timeline.end() is None


class TestWindows:
    def test_window_for(self, clock):
        timeline = make_timeline(clock)
        assert timeline.window_for(0) == (0, CHUNK_DURATION_MS)
        assert timeline.window_for(2) == (2 * CHUNK_DURATION_MS, 3 * CHUNK_DURATION_MS)

    def test_events_bucketed_by_window(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        clock.advance(599_999)
        timeline.append("edge_of_zero")
        clock.advance(1)
        timeline.append("start_of_one")
        clock.advance(50_000)
        timeline.append("inside_one")

        assert [e.type for e in timeline.events_in_window(0)] == [SESSION_START, "edge_of_zero"]
        assert [e.type for e in timeline.events_in_window(1)] == ["start_of_one", "inside_one"]
        assert timeline.events_in_window(2) == []

    def test_each_event_in_exactly_one_window(self, clock):
        timeline = make_timeline(clock)
        timeline.start("examA", "stud1")
        for step in (10, 600_000, 1, 1_199_990, 77):
            clock.advance(step)
            timeline.append("tick")

        buckets = [timeline.events_in_window(i) for i in range(5)]
        assert sum(len(b) for b in buckets) == len(timeline.events)
