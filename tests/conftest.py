"""Shared test fixtures and helpers."""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import pytest

from tourdesk.backend.client import CalendarFeed
from tourdesk.calendar.preferences_store import PreferenceChannel
from tourdesk.errors import NotAuthenticatedError, TransportFailure
from tourdesk.lifecycle.state_machine import BookingStateMachine
from tourdesk.schemas.availability_schema import AvailabilityBlock, BlockKind, CalendarPreferences
from tourdesk.schemas.booking_schema import (
    Booking,
    BookingSource,
    BookingStatus,
    ManualBookingDraft,
    Visitor,
)

NY = ZoneInfo("America/New_York")
USER_ID = 7


def ny(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware datetime in America/New_York."""
    return datetime(year, month, day, hour, minute, tzinfo=NY)


def make_prefs(**overrides: Any) -> CalendarPreferences:
    """Helper to create CalendarPreferences with sensible defaults."""
    values: dict[str, Any] = {
        "start_time": "09:00",
        "end_time": "17:00",
        "timezone": "America/New_York",
        "slot_length_minutes": 30,
        "working_days": [1, 2, 3, 4, 5],
    }
    values.update(overrides)
    return CalendarPreferences(**values)


def make_booking(
    booking_id: int = 1,
    status: BookingStatus = BookingStatus.PENDING,
    start: Optional[datetime] = None,
    minutes: int = 30,
    property_id: int = 100,
    address: Optional[str] = "12 Elm Street",
    visitor_name: str = "Jane Doe",
    approver_id: Optional[int] = None,
    **kwargs: Any,
) -> Booking:
    """Helper to create a Booking; defaults to a pending Wednesday 10:00 tour."""
    start = start or ny(2025, 4, 9, 10)
    return Booking(
        booking_id=booking_id,
        property_id=property_id,
        property_address=address,
        visitor=Visitor(name=visitor_name, phone="5551234567", email="jane@example.com"),
        start_at=start,
        end_at=start + timedelta(minutes=minutes),
        timezone="America/New_York",
        status=status,
        approver_id=approver_id,
        **kwargs,
    )


def make_block(
    block_id: str = "b1",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    kind: BlockKind = BlockKind.UNAVAILABLE,
    is_full_day: bool = False,
    reason: Optional[str] = None,
) -> AvailabilityBlock:
    """Helper to create an AvailabilityBlock; defaults to Wednesday 13:00-14:00."""
    start = start or ny(2025, 4, 9, 13)
    return AvailabilityBlock(
        block_id=block_id,
        start_at=start,
        end_at=end or start + timedelta(hours=1),
        kind=kind,
        is_full_day=is_full_day,
        reason=reason,
    )


def make_draft(**overrides: Any) -> ManualBookingDraft:
    values: dict[str, Any] = {
        "property_id": 100,
        "visitor": Visitor(name="Sam Lee", phone="(555) 987-6543"),
        "start_at": ny(2025, 4, 10, 11),
        "end_at": ny(2025, 4, 10, 11, 30),
    }
    values.update(overrides)
    return ManualBookingDraft(**values)


class FakeBackend:
    """
    In-memory stand-in for BookingBackendClient.

    Every call is recorded in ``calls``. Method names in ``fail`` raise
    TransportFailure; ``auth_failure`` makes every call raise
    NotAuthenticatedError; an asyncio.Event in ``gates`` holds that method
    until it is set.
    """

    def __init__(
        self,
        bookings: Optional[list[Booking]] = None,
        blocks: Optional[list[AvailabilityBlock]] = None,
        prefs: Optional[CalendarPreferences] = None,
    ) -> None:
        self.bookings = list(bookings or [])
        self.blocks = list(blocks or [])
        self.prefs = prefs or make_prefs()
        self.fail: set[str] = set()
        self.auth_failure = False
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.invalidations: list[int] = []
        self._next_id = 900

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if self.auth_failure:
            raise NotAuthenticatedError("Token expired. Sign in again.")
        if name in self.fail:
            raise TransportFailure(f"{name} failed", status_code=503)

    def invalidate_user(self, user_id: int) -> int:
        self.invalidations.append(user_id)
        return 0

    async def fetch_bookings(self, user_id, status=None, date_from=None, date_to=None):
        await self._call("fetch_bookings", user_id, status)
        return [
            b.model_copy(deep=True)
            for b in self.bookings
            if status is None or b.status == status
        ]

    async def approve_booking(self, booking_id, approver_id):
        await self._call("approve_booking", booking_id, approver_id)
        return {"success": True}

    async def deny_booking(self, booking_id, approver_id, reason=None):
        await self._call("deny_booking", booking_id, approver_id, reason)
        return {"success": True}

    async def reschedule_booking(self, booking_id, proposed_slots, reason=None):
        await self._call("reschedule_booking", booking_id, proposed_slots, reason)
        return {"success": True}

    async def cancel_booking(self, booking_id, reason=None):
        await self._call("cancel_booking", booking_id, reason)
        return {"success": True}

    async def create_manual_booking(self, draft):
        await self._call("create_manual_booking", draft)
        self._next_id += 1
        return Booking(
            booking_id=self._next_id,
            property_id=draft.property_id,
            visitor=draft.visitor,
            start_at=draft.start_at,
            end_at=draft.end_at,
            timezone=draft.timezone,
            status=BookingStatus.PENDING,
            created_by=BookingSource.EXTERNAL_VOICE_AGENT,
        )

    async def fetch_preferences(self, user_id, user_type):
        await self._call("fetch_preferences", user_id, user_type)
        return self.prefs.model_copy(deep=True)

    async def update_preferences(self, user_id, user_type, prefs):
        await self._call("update_preferences", user_id, user_type, prefs)
        self.prefs = prefs.model_copy(deep=True)

    async def fetch_blocks(self, user_id, user_type, date_from=None, date_to=None):
        await self._call("fetch_blocks", user_id, user_type)
        return [b.model_copy(deep=True) for b in self.blocks]

    async def fetch_calendar_events(self, user_id, date_from=None, date_to=None):
        await self._call("fetch_calendar_events", user_id)
        return CalendarFeed(
            bookings=[b.model_copy(deep=True) for b in self.bookings],
            blocks=[b.model_copy(deep=True) for b in self.blocks],
        )


@pytest.fixture
def backend():
    return FakeBackend(bookings=[make_booking()])


@pytest.fixture
def channel():
    return PreferenceChannel()


@pytest.fixture
def state_machine():
    return BookingStateMachine()
