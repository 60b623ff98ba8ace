"""
Availability slot aggregation.

Three independently sourced layers are combined for one render window:

1. working hours, synthesized from preferences (day/week views only)
2. explicit availability blocks (unavailable, busy, personal, holiday, off-day)
3. bookings, tagged by status

Layers are never merged or clipped against each other; overlapping
intervals of different kinds all render. Only events with the same id are
collapsed. Precedence decides draw order, it never filters data.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from tourdesk.backend.client import BookingBackendClient
from tourdesk.calendar.day_convention import ui_weekday
from tourdesk.errors import TransportFailure
from tourdesk.schemas.availability_schema import AvailabilityBlock, BlockKind, CalendarPreferences
from tourdesk.schemas.booking_schema import Booking
from tourdesk.schemas.calendar_schema import CalendarEvent, EventLayer, Granularity, RenderWindow
from tourdesk.utils import parse_hhmm

logger = logging.getLogger(__name__)

BLOCK_PRECEDENCE: dict[BlockKind, int] = {
    BlockKind.WORKING_HOURS: 1,
    BlockKind.UNAVAILABLE: 2,
    BlockKind.PERSONAL: 2,
    BlockKind.BUSY: 3,
    BlockKind.OFF_DAY: 4,
    BlockKind.HOLIDAY: 5,
}
BOOKING_PRECEDENCE = 10

BLOCK_LABELS: dict[BlockKind, str] = {
    BlockKind.UNAVAILABLE: "Unavailable",
    BlockKind.BUSY: "Busy",
    BlockKind.PERSONAL: "Personal",
    BlockKind.HOLIDAY: "Holiday",
    BlockKind.OFF_DAY: "Off Day",
}

# Last representable instant of a calendar day, used for all-day spans
END_OF_DAY = time(23, 59, 59, 999000)


def render_window(anchor: date, granularity: Granularity, tz: tzinfo) -> RenderWindow:
    """Day -> that day; week -> enclosing Sunday-started week; month -> enclosing month."""
    if granularity == Granularity.DAY:
        first = last = anchor
    elif granularity == Granularity.WEEK:
        first = anchor - timedelta(days=ui_weekday(anchor))
        last = first + timedelta(days=6)
    else:
        first = anchor.replace(day=1)
        last = first + relativedelta(months=1) - timedelta(days=1)

    return RenderWindow(
        start=datetime.combine(first, time.min, tzinfo=tz),
        end=datetime.combine(last + timedelta(days=1), time.min, tzinfo=tz),
        granularity=granularity,
    )


def window_days(window: RenderWindow) -> list[date]:
    days = []
    current = window.start.date()
    last = (window.end - timedelta(microseconds=1)).date()
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def working_hours_events(window: RenderWindow, prefs: CalendarPreferences) -> list[CalendarEvent]:
    """One interval per working day in the window; none for month views."""
    if window.granularity == Granularity.MONTH:
        return []

    zone = prefs.tzinfo
    opens, closes = parse_hhmm(prefs.start_time), parse_hhmm(prefs.end_time)
    events = []
    for day in window_days(window):
        if ui_weekday(day) not in prefs.working_days:
            continue
        start = datetime.combine(day, opens, tzinfo=zone)
        end = datetime.combine(day, closes, tzinfo=zone)
        if not window.intersects(start, end):
            continue
        events.append(CalendarEvent(
            event_id=f"working-hours-{day.isoformat()}",
            title="Working hours",
            start=start.astimezone(window.start.tzinfo),
            end=end.astimezone(window.start.tzinfo),
            layer=EventLayer.WORKING_HOURS,
            kind=BlockKind.WORKING_HOURS.value,
            precedence=BLOCK_PRECEDENCE[BlockKind.WORKING_HOURS],
        ))
    return events


def block_event(block: AvailabilityBlock, tz: tzinfo) -> CalendarEvent:
    """Render a block; full-day blocks span 00:00-23:59:59.999 of each covered day."""
    label = BLOCK_LABELS.get(block.kind, "Unavailable")
    title = f"{label}: {block.reason}" if block.reason else label

    if block.is_full_day:
        first_day = block.start_at.astimezone(tz).date()
        last_day = max((block.end_at - timedelta(microseconds=1)).astimezone(tz).date(), first_day)
        start = datetime.combine(first_day, time.min, tzinfo=tz)
        end = datetime.combine(last_day, END_OF_DAY, tzinfo=tz)
    else:
        start, end = block.start_at.astimezone(tz), block.end_at.astimezone(tz)

    return CalendarEvent(
        event_id=f"availability-{block.block_id}",
        title=title,
        start=start,
        end=end,
        layer=EventLayer.AVAILABILITY,
        kind=block.kind.value,
        all_day=block.is_full_day,
        precedence=BLOCK_PRECEDENCE[block.kind],
        block_id=block.block_id,
    )


def booking_event(booking: Booking, tz: tzinfo) -> CalendarEvent:
    return CalendarEvent(
        event_id=f"booking-{booking.booking_id}",
        title=booking.title,
        start=booking.start_at.astimezone(tz),
        end=booking.end_at.astimezone(tz),
        layer=EventLayer.BOOKING,
        kind=booking.status.value,
        precedence=BOOKING_PRECEDENCE,
        booking_id=booking.booking_id,
    )


def _dedupe(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    seen: set[str] = set()
    unique = []
    for event in events:
        if event.event_id in seen:
            logger.debug("Dropping duplicate event %s", event.event_id)
            continue
        seen.add(event.event_id)
        unique.append(event)
    return unique


def compute_events(
    anchor: date,
    preferences: CalendarPreferences,
    blocked_slots: Iterable[AvailabilityBlock],
    bookings: Iterable[Booking],
    granularity: Granularity,
    viewer_tz: Optional[tzinfo] = None,
) -> list[CalendarEvent]:
    """
    Labeled intervals for the window around ``anchor``.

    Returns events ordered by (start, precedence, id). ``viewer_tz``
    defaults to the preferences timezone.
    """
    tz = viewer_tz or preferences.tzinfo
    window = render_window(anchor, granularity, tz)

    events = working_hours_events(window, preferences)

    for block in blocked_slots:
        if block.kind == BlockKind.WORKING_HOURS:
            logger.debug("Ignoring stored working-hours block %s", block.block_id)
            continue
        event = block_event(block, tz)
        if window.intersects(event.start, event.end):
            events.append(event)

    for booking in bookings:
        if window.intersects(booking.start_at, booking.end_at):
            events.append(booking_event(booking, tz))

    unique = _dedupe(events)
    return sorted(unique, key=lambda e: (e.start, e.precedence, e.event_id))


@dataclass
class CalendarLayers:
    """Bookings and blocks fetched for one window."""

    bookings: list[Booking] = field(default_factory=list)
    blocks: list[AvailabilityBlock] = field(default_factory=list)


async def _load_bookings(
    client: BookingBackendClient, user_id: int, window: RenderWindow
) -> list[Booking]:
    try:
        return await client.fetch_bookings(user_id, date_from=window.start, date_to=window.end)
    except TransportFailure as e:
        logger.warning("Bookings unavailable for user %s, rendering none: %s", user_id, e)
        return []


async def _load_blocks(
    client: BookingBackendClient, user_id: int, user_type: str, window: RenderWindow
) -> list[AvailabilityBlock]:
    try:
        feed = await client.fetch_calendar_events(user_id, window.start, window.end)
        return feed.blocks
    except TransportFailure as e:
        logger.warning("Calendar events feed failed for user %s, trying unavailable slots: %s", user_id, e)

    try:
        return await client.fetch_blocks(user_id, user_type, window.start, window.end)
    except TransportFailure as e:
        logger.warning("Availability unavailable for user %s, rendering none: %s", user_id, e)
        return []


async def load_layers(
    client: BookingBackendClient, user_id: int, user_type: str, window: RenderWindow
) -> CalendarLayers:
    """
    Fetch both layers independently.

    A TransportFailure degrades only the failing layer to empty so a broken
    availability feed never hides bookings and vice versa.
    """
    bookings, blocks = await asyncio.gather(
        _load_bookings(client, user_id, window),
        _load_blocks(client, user_id, user_type, window),
    )
    return CalendarLayers(bookings=bookings, blocks=blocks)
