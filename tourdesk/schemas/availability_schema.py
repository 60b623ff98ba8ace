"""Availability block and calendar preference models."""

from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from tourdesk.config import ALLOWED_SLOT_LENGTHS
from tourdesk.utils import parse_hhmm


class BlockKind(str, Enum):
    WORKING_HOURS = "working-hours"
    UNAVAILABLE = "unavailable"
    BUSY = "busy"
    PERSONAL = "personal"
    HOLIDAY = "holiday"
    OFF_DAY = "off-day"


class AvailabilityBlock(BaseModel):
    """Explicitly blocked interval owned by one user."""

    block_id: str
    start_at: AwareDatetime
    end_at: AwareDatetime
    kind: BlockKind = BlockKind.UNAVAILABLE
    is_full_day: bool = False
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_interval(self) -> "AvailabilityBlock":
        if self.end_at <= self.start_at:
            raise ValueError(f"Block {self.block_id}: end_at must be after start_at")
        return self


class CalendarPreferences(BaseModel):
    """
    Per-user working-hour configuration.

    ``working_days`` always holds UI-convention weekdays (0=Sunday). The
    backend convention only exists inside tourdesk.backend.normalize.
    ``is_fallback`` marks configured defaults returned because the live
    fetch failed; such a value is never cached.
    """

    start_time: str = "09:00"
    end_time: str = "17:00"
    timezone: str = "America/New_York"
    slot_length_minutes: int = 30
    working_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    is_fallback: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        return parse_hhmm(value).strftime("%H:%M")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value!r}") from None
        return value

    @field_validator("slot_length_minutes")
    @classmethod
    def _check_slot_length(cls, value: int) -> int:
        if value not in ALLOWED_SLOT_LENGTHS:
            raise ValueError(f"slot_length_minutes must be one of {ALLOWED_SLOT_LENGTHS}")
        return value

    @field_validator("working_days")
    @classmethod
    def _check_days(cls, value: list[int]) -> list[int]:
        if any(not 0 <= day <= 6 for day in value):
            raise ValueError(f"working_days must be within 0..6, got {value}")
        return sorted(set(value))

    @model_validator(mode="after")
    def _check_range(self) -> "CalendarPreferences":
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def same_settings(self, other: "CalendarPreferences") -> bool:
        """Compare everything except the fallback flag."""
        return self.model_dump(exclude={"is_fallback"}) == other.model_dump(
            exclude={"is_fallback"}
        )
