"""Booking data models."""

from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field, model_validator


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class BookingSource(str, Enum):
    EXTERNAL_VOICE_AGENT = "external-voice-agent"
    DASHBOARD = "dashboard"


class Visitor(BaseModel):
    """Person who requested the tour."""
    name: str
    phone: str
    email: Optional[str] = None


class ProposedSlot(BaseModel):
    """Alternative time offered to the visitor on reschedule.

    Ordering is checked by the lifecycle manager so a bad proposal surfaces
    as a ValidationError before anything is mutated.
    """
    start_at: AwareDatetime
    end_at: AwareDatetime


class AuditEntry(BaseModel):
    """One recorded action on a booking."""
    action: str
    performed_by: str
    performed_at: AwareDatetime
    notes: Optional[str] = None


class Booking(BaseModel):
    """Canonical property-tour booking."""

    booking_id: int
    property_id: int
    property_address: Optional[str] = None
    visitor: Visitor
    start_at: AwareDatetime
    end_at: AwareDatetime
    timezone: str = "UTC"
    status: BookingStatus = BookingStatus.PENDING
    created_by: BookingSource = BookingSource.EXTERNAL_VOICE_AGENT
    approver_id: Optional[int] = None
    notes: Optional[str] = None
    proposed_slots: list[ProposedSlot] = Field(default_factory=list)
    audit_log: list[AuditEntry] = Field(default_factory=list)
    requested_at: Optional[AwareDatetime] = None
    updated_at: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def _check_interval(self) -> "Booking":
        if self.start_at >= self.end_at:
            raise ValueError(
                f"Booking {self.booking_id}: start_at must be before end_at"
            )
        return self

    @property
    def title(self) -> str:
        place = self.property_address or f"Property #{self.property_id}"
        return f"{self.visitor.name} - {place}"


class ManualBookingDraft(BaseModel):
    """Dashboard-entered booking, approved on creation."""
    property_id: int
    visitor: Visitor
    start_at: AwareDatetime
    end_at: AwareDatetime
    timezone: str = "America/New_York"
    notes: Optional[str] = None
