"""
Calendar preferences store with explicit cache invalidation.

The backend is the only source of truth. The local cache is a read-through
optimization for views that need a value before the live fetch returns;
``load`` always goes to the backend first and a fallback value is never
cached. ``save`` invalidates before writing, re-reads after writing and
republishes the fresh value on a per-user channel so every open view
converges on the same settings.

Usage:
    store = PreferencesStore(client)
    prefs = await store.load(7, "property_manager")
    store.channel.subscribe(7, lambda user_id, prefs: ...)
    await store.save(7, "property_manager", prefs.model_copy(update={"start_time": "08:00"}))
"""

import asyncio
from typing import Callable, Optional

from tourdesk.backend.client import BookingBackendClient
from tourdesk.config import settings
from tourdesk.errors import TransportFailure
from tourdesk.logging_context import bound_user, get_user_logger
from tourdesk.schemas.availability_schema import CalendarPreferences

logger = get_user_logger(__name__)

PreferenceHandler = Callable[[int, CalendarPreferences], None]


def default_preferences() -> CalendarPreferences:
    """Configured defaults, flagged as a fallback."""
    cal = settings.calendar
    return CalendarPreferences(
        start_time=cal.default_start_time,
        end_time=cal.default_end_time,
        timezone=cal.default_timezone,
        slot_length_minutes=cal.default_slot_length,
        working_days=list(cal.default_working_days),
        is_fallback=True,
    )


class PreferenceChannel:
    """
    Publish/subscribe channel for preference changes, keyed by user id.

    publish() MUST NOT raise: a failing subscriber is logged and skipped so
    one broken view cannot stop the others from refreshing.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, list[PreferenceHandler]] = {}

    def subscribe(self, user_id: int, handler: PreferenceHandler) -> None:
        self._subscribers.setdefault(user_id, []).append(handler)
        logger.debug("Preference subscriber added for user %s", user_id)

    def unsubscribe(self, user_id: int, handler: PreferenceHandler) -> bool:
        handlers = self._subscribers.get(user_id, [])
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def publish(self, user_id: int, prefs: CalendarPreferences) -> int:
        """Deliver a copy of prefs to each subscriber; returns the success count."""
        delivered = 0
        for handler in list(self._subscribers.get(user_id, [])):
            try:
                handler(user_id, prefs.model_copy(deep=True))
                delivered += 1
            except Exception as e:
                logger.warning("Preference subscriber failed for user %s: %s", user_id, e)
        return delivered

    def subscriber_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, []))


_channel: Optional[PreferenceChannel] = None


def get_preference_channel() -> PreferenceChannel:
    """Process-wide channel shared by every store and view."""
    global _channel
    if _channel is None:
        _channel = PreferenceChannel()
    return _channel


def reset_preference_channel() -> None:
    """Reset the process-wide channel (for testing)."""
    global _channel
    _channel = None


class PreferencesStore:
    """Owns the per-user preferences cache; the only writer of preferences."""

    def __init__(
        self,
        client: BookingBackendClient,
        channel: Optional[PreferenceChannel] = None,
    ) -> None:
        self._client = client
        self.channel = channel or get_preference_channel()
        self._cache: dict[int, CalendarPreferences] = {}
        # Bumped on every invalidation; a read that started under an older
        # generation must not overwrite what a save has since established.
        self._generation: dict[int, int] = {}
        self._save_locks: dict[int, asyncio.Lock] = {}

    def cached(self, user_id: int) -> Optional[CalendarPreferences]:
        """Last live value for the user, or None. Never authoritative."""
        prefs = self._cache.get(user_id)
        return prefs.model_copy(deep=True) if prefs is not None else None

    def invalidate(self, user_id: int) -> None:
        """Drop cached preferences and every cached calendar page for the user."""
        self._cache.pop(user_id, None)
        self._generation[user_id] = self._generation.get(user_id, 0) + 1
        dropped = self._client.invalidate_user(user_id)
        logger.debug("Invalidated preferences for user %s (%d cached pages)", user_id, dropped)

    async def load(self, user_id: int, user_type: str) -> CalendarPreferences:
        """
        Fetch live preferences.

        Transport failures return configured defaults with ``is_fallback``
        set; NotAuthenticatedError propagates.
        """
        generation = self._generation.get(user_id, 0)
        with bound_user(user_id):
            try:
                prefs = await self._client.fetch_preferences(user_id, user_type)
            except TransportFailure as e:
                logger.warning("Preferences fetch failed, using defaults: %s", e)
                return default_preferences()

            if self._generation.get(user_id, 0) != generation:
                current = self._cache.get(user_id)
                logger.debug("Discarding stale preferences read")
                if current is not None:
                    return current.model_copy(deep=True)
                return prefs

        self._cache[user_id] = prefs
        return prefs.model_copy(deep=True)

    async def save(
        self, user_id: int, user_type: str, prefs: CalendarPreferences
    ) -> CalendarPreferences:
        """Persist prefs, re-read them live and publish the fresh value."""
        submitted = prefs.model_copy(update={"is_fallback": False})
        lock = self._save_locks.setdefault(user_id, asyncio.Lock())

        with bound_user(user_id):
            async with lock:
                self.invalidate(user_id)
                await self._client.update_preferences(user_id, user_type, submitted)
                fresh = await self._client.fetch_preferences(user_id, user_type)
                self._generation[user_id] = self._generation.get(user_id, 0) + 1
                self._cache[user_id] = fresh

            logger.info(
                "Preferences saved: %s-%s %s",
                fresh.start_time, fresh.end_time, fresh.timezone,
            )
            self.channel.publish(user_id, fresh)
        return fresh.model_copy(deep=True)
