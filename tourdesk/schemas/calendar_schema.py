"""Calendar read-model shapes handed to the presentation layer."""

from datetime import datetime, time
from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class EventLayer(str, Enum):
    BOOKING = "booking"
    WORKING_HOURS = "working-hours"
    AVAILABILITY = "availability"


class RenderWindow(BaseModel):
    """Half-open [start, end) interval covered by one calendar view."""
    start: AwareDatetime
    end: AwareDatetime
    granularity: Granularity

    def intersects(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start


class CalendarEvent(BaseModel):
    """One labeled interval on the calendar."""
    event_id: str
    title: str
    start: AwareDatetime
    end: AwareDatetime
    layer: EventLayer
    kind: str
    all_day: bool = False
    precedence: int = 0
    booking_id: Optional[int] = None
    block_id: Optional[str] = None


class Projection(BaseModel):
    """Everything a calendar view needs for one render."""
    render_window: RenderWindow
    booking_events: list[CalendarEvent] = Field(default_factory=list)
    working_hours_events: list[CalendarEvent] = Field(default_factory=list)
    availability_events: list[CalendarEvent] = Field(default_factory=list)
    # None for month views, which have no clock axis
    visible_range: Optional[tuple[time, time]] = None

    @property
    def all_events(self) -> list[CalendarEvent]:
        combined = self.working_hours_events + self.availability_events + self.booking_events
        return sorted(combined, key=lambda e: (e.start, e.precedence, e.event_id))
