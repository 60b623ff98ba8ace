"""
Calendar projection: the read model handed to day/week/month views.

``project`` is pure; interval math lives in the aggregator. Day and week
views get a fixed visible clock range (06:00-20:00 by default) wider than
any working-hours setting, so out-of-hours bookings and blocks are never
clipped. Working hours render as a highlighted sub-range inside it.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from tourdesk.backend.client import BookingBackendClient
from tourdesk.calendar.aggregator import compute_events, load_layers, render_window
from tourdesk.calendar.preferences_store import PreferencesStore
from tourdesk.config import settings
from tourdesk.lifecycle.manager import BookingLifecycleManager
from tourdesk.schemas.availability_schema import AvailabilityBlock, CalendarPreferences
from tourdesk.schemas.booking_schema import Booking
from tourdesk.schemas.calendar_schema import EventLayer, Granularity, Projection
from tourdesk.utils import parse_hhmm

logger = logging.getLogger(__name__)


def visible_range(granularity: Granularity) -> Optional[tuple[time, time]]:
    """Clock range shown by a view; month views have none."""
    if granularity == Granularity.MONTH:
        return None
    return parse_hhmm(settings.calendar.visible_start), parse_hhmm(settings.calendar.visible_end)


def project(
    bookings: Iterable[Booking],
    preferences: CalendarPreferences,
    blocked_slots: Iterable[AvailabilityBlock],
    anchor_date: date,
    granularity: Granularity,
    viewer_tz: Optional[tzinfo] = None,
) -> Projection:
    tz = viewer_tz or preferences.tzinfo
    events = compute_events(anchor_date, preferences, blocked_slots, bookings, granularity, tz)

    return Projection(
        render_window=render_window(anchor_date, granularity, tz),
        booking_events=[e for e in events if e.layer == EventLayer.BOOKING],
        working_hours_events=[e for e in events if e.layer == EventLayer.WORKING_HOURS],
        availability_events=[e for e in events if e.layer == EventLayer.AVAILABILITY],
        visible_range=visible_range(granularity),
    )


@dataclass(frozen=True)
class CalendarView:
    """Anchor date and zoom level of one calendar view."""

    anchor: date
    granularity: Granularity = Granularity.WEEK

    def _step(self, count: int) -> date:
        if self.granularity == Granularity.DAY:
            return self.anchor + timedelta(days=count)
        if self.granularity == Granularity.WEEK:
            return self.anchor + timedelta(weeks=count)
        # relativedelta clamps Jan 31 + 1 month to the last day of February
        return self.anchor + relativedelta(months=count)

    def next(self) -> "CalendarView":
        return replace(self, anchor=self._step(1))

    def previous(self) -> "CalendarView":
        return replace(self, anchor=self._step(-1))

    def with_granularity(self, granularity: Granularity) -> "CalendarView":
        return replace(self, granularity=granularity)

    def today(self, tz: Optional[tzinfo] = None) -> "CalendarView":
        return replace(self, anchor=datetime.now(tz).date())


class CalendarProjector:
    """
    Produces projections for one user.

    Subscribes to the preference channel so a save anywhere in the process
    is reflected on the next refresh without another fetch. When a
    lifecycle manager is attached, fetched bookings are merged into it and
    the projection shows its optimistic state.
    """

    def __init__(
        self,
        store: PreferencesStore,
        client: BookingBackendClient,
        user_id: int,
        user_type: str,
        lifecycle: Optional[BookingLifecycleManager] = None,
        viewer_tz: Optional[tzinfo] = None,
    ) -> None:
        self._store = store
        self._client = client
        self.user_id = user_id
        self.user_type = user_type
        self._lifecycle = lifecycle
        self._viewer_tz = viewer_tz
        self._preferences: Optional[CalendarPreferences] = None
        store.channel.subscribe(user_id, self._on_preferences)

    @property
    def preferences(self) -> Optional[CalendarPreferences]:
        return self._preferences

    def _on_preferences(self, user_id: int, prefs: CalendarPreferences) -> None:
        logger.debug("Projector for user %s received new preferences", user_id)
        self._preferences = prefs

    async def reload_preferences(self) -> CalendarPreferences:
        self._preferences = await self._store.load(self.user_id, self.user_type)
        return self._preferences

    async def refresh(self, view: CalendarView) -> Projection:
        """Fetch both layers for the view's window and project them."""
        prefs = self._preferences
        if prefs is None or prefs.is_fallback:
            prefs = await self.reload_preferences()

        tz = self._viewer_tz or prefs.tzinfo
        window = render_window(view.anchor, view.granularity, tz)
        layers = await load_layers(self._client, self.user_id, self.user_type, window)

        bookings: list[Booking] = layers.bookings
        if self._lifecycle is not None:
            self._lifecycle.merge(layers.bookings)
            bookings = self._lifecycle.snapshot()

        return project(bookings, prefs, layers.blocks, view.anchor, view.granularity, self._viewer_tz)

    def close(self) -> None:
        self._store.channel.unsubscribe(self.user_id, self._on_preferences)
