"""Tests for availability slot aggregation."""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from tests.conftest import USER_ID, FakeBackend, make_block, make_booking, make_prefs, ny
from tourdesk.calendar.aggregator import compute_events, load_layers, render_window
from tourdesk.errors import NotAuthenticatedError
from tourdesk.schemas.availability_schema import BlockKind
from tourdesk.schemas.calendar_schema import EventLayer, Granularity

NY = ZoneInfo("America/New_York")
WEDNESDAY = date(2025, 4, 9)


class TestRenderWindow:
    def test_day(self):
        window = render_window(WEDNESDAY, Granularity.DAY, NY)
        assert window.start == ny(2025, 4, 9)
        assert window.end == ny(2025, 4, 10)

    def test_week_starts_sunday(self):
        window = render_window(WEDNESDAY, Granularity.WEEK, NY)
        assert window.start == ny(2025, 4, 6)
        assert window.end == ny(2025, 4, 13)

    def test_week_anchor_on_sunday(self):
        window = render_window(date(2025, 4, 6), Granularity.WEEK, NY)
        assert window.start == ny(2025, 4, 6)

    def test_month(self):
        window = render_window(WEDNESDAY, Granularity.MONTH, NY)
        assert window.start == ny(2025, 4, 1)
        assert window.end == ny(2025, 5, 1)

    def test_february(self):
        window = render_window(date(2024, 2, 10), Granularity.MONTH, NY)
        assert window.end == ny(2024, 3, 1)


class TestWorkingHours:
    def test_week_has_one_interval_per_weekday(self):
        events = compute_events(WEDNESDAY, make_prefs(), [], [], Granularity.WEEK)
        hours = [e for e in events if e.layer == EventLayer.WORKING_HOURS]

        assert len(hours) == 5
        assert [e.start.date() for e in hours] == [date(2025, 4, d) for d in range(7, 12)]
        for event in hours:
            assert event.start.time() == time(9, 0)
            assert event.end.time() == time(17, 0)
            assert event.start.weekday() < 5

    def test_month_synthesizes_none(self):
        events = compute_events(WEDNESDAY, make_prefs(), [], [], Granularity.MONTH)
        assert [e for e in events if e.layer == EventLayer.WORKING_HOURS] == []

    def test_day_off(self):
        events = compute_events(date(2025, 4, 6), make_prefs(), [], [], Granularity.DAY)
        assert events == []

    def test_weekend_working_days(self):
        prefs = make_prefs(working_days=[0, 6], start_time="10:00", end_time="14:00")
        events = compute_events(WEDNESDAY, prefs, [], [], Granularity.WEEK)
        assert [e.start for e in events] == [ny(2025, 4, 6, 10), ny(2025, 4, 12, 10)]

    def test_uses_preferences_timezone(self):
        prefs = make_prefs(timezone="America/Los_Angeles")
        events = compute_events(WEDNESDAY, prefs, [], [], Granularity.DAY)
        assert len(events) == 1
        assert events[0].start == datetime(2025, 4, 9, 9, tzinfo=ZoneInfo("America/Los_Angeles"))


class TestBlocksAndBookings:
    def test_overlapping_layers_are_all_kept(self):
        booking = make_booking(1, start=ny(2025, 4, 9, 13))
        busy = make_block("busy-1", kind=BlockKind.BUSY)
        personal = make_block("personal-1", kind=BlockKind.PERSONAL)
        events = compute_events(WEDNESDAY, make_prefs(), [busy, personal], [booking], Granularity.DAY)

        at_one = [e for e in events if e.start == ny(2025, 4, 9, 13)]
        assert [e.event_id for e in at_one] == ["availability-personal-1", "availability-busy-1", "booking-1"]

    def test_ordering_by_start_then_precedence(self):
        holiday = make_block("h", start=ny(2025, 4, 9, 9), kind=BlockKind.HOLIDAY)
        unavailable = make_block("u", start=ny(2025, 4, 9, 9), kind=BlockKind.UNAVAILABLE)
        events = compute_events(WEDNESDAY, make_prefs(), [holiday, unavailable], [], Granularity.DAY)
        assert [e.kind for e in events] == ["working-hours", "unavailable", "holiday"]

    def test_duplicate_ids_collapsed(self):
        first = make_block("dup", reason="first")
        second = make_block("dup", reason="second")
        events = compute_events(WEDNESDAY, make_prefs(), [first, second], [], Granularity.DAY)
        blocks = [e for e in events if e.layer == EventLayer.AVAILABILITY]
        assert len(blocks) == 1
        assert blocks[0].title == "Unavailable: first"

    def test_outside_window_excluded(self):
        block = make_block("later", start=ny(2025, 4, 20, 9))
        booking = make_booking(1, start=ny(2025, 4, 20, 10))
        events = compute_events(WEDNESDAY, make_prefs(), [block], [booking], Granularity.WEEK)
        assert all(e.layer == EventLayer.WORKING_HOURS for e in events)

    def test_stored_working_hours_block_ignored(self):
        block = make_block("wh", kind=BlockKind.WORKING_HOURS)
        events = compute_events(WEDNESDAY, make_prefs(), [block], [], Granularity.DAY)
        assert all(e.block_id is None for e in events)

    def test_booking_tagged_by_status(self, backend):
        events = compute_events(WEDNESDAY, make_prefs(), [], backend.bookings, Granularity.DAY)
        booking_event = next(e for e in events if e.layer == EventLayer.BOOKING)
        assert booking_event.kind == "pending"
        assert booking_event.booking_id == 1
        assert booking_event.title == "Jane Doe - 12 Elm Street"

    def test_full_day_block_spans_whole_days(self):
        block = make_block(
            "trip", start=ny(2025, 4, 7), end=ny(2025, 4, 9),
            kind=BlockKind.OFF_DAY, is_full_day=True,
        )
        events = compute_events(WEDNESDAY, make_prefs(), [block], [], Granularity.WEEK)
        event = next(e for e in events if e.block_id == "trip")
        assert event.all_day
        assert event.start == ny(2025, 4, 7)
        assert event.end.date() == date(2025, 4, 8)
        assert event.end.time() == time(23, 59, 59, 999000)

    def test_viewer_timezone(self):
        booking = make_booking(1, start=ny(2025, 4, 9, 10))
        utc = ZoneInfo("UTC")
        events = compute_events(WEDNESDAY, make_prefs(), [], [booking], Granularity.DAY, viewer_tz=utc)
        booking_event = next(e for e in events if e.layer == EventLayer.BOOKING)
        assert booking_event.start.utcoffset().total_seconds() == 0
        assert booking_event.start.hour == 14


class TestLoadLayers:
    def setup_method(self):
        self.window = render_window(WEDNESDAY, Granularity.WEEK, NY)
        self.backend = FakeBackend(bookings=[make_booking(1)], blocks=[make_block("b1")])

    @pytest.mark.asyncio
    async def test_reads_combined_feed(self):
        layers = await load_layers(self.backend, USER_ID, "property_manager", self.window)
        assert [b.booking_id for b in layers.bookings] == [1]
        assert [b.block_id for b in layers.blocks] == ["b1"]
        assert "fetch_blocks" not in self.backend.call_names()

    @pytest.mark.asyncio
    async def test_falls_back_to_unavailable_slots(self):
        self.backend.fail.add("fetch_calendar_events")
        layers = await load_layers(self.backend, USER_ID, "property_manager", self.window)
        assert [b.block_id for b in layers.blocks] == ["b1"]
        assert "fetch_blocks" in self.backend.call_names()

    @pytest.mark.asyncio
    async def test_broken_availability_keeps_bookings(self):
        self.backend.fail.update({"fetch_calendar_events", "fetch_blocks"})
        layers = await load_layers(self.backend, USER_ID, "property_manager", self.window)
        assert layers.blocks == []
        assert [b.booking_id for b in layers.bookings] == [1]

    @pytest.mark.asyncio
    async def test_broken_bookings_keeps_availability(self):
        self.backend.fail.add("fetch_bookings")
        layers = await load_layers(self.backend, USER_ID, "property_manager", self.window)
        assert layers.bookings == []
        assert [b.block_id for b in layers.blocks] == ["b1"]

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self):
        self.backend.auth_failure = True
        with pytest.raises(NotAuthenticatedError):
            await load_layers(self.backend, USER_ID, "property_manager", self.window)
