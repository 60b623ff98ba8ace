"""
Edge normalization of backend payloads into canonical models.

The booking service is not consistent about field names: the same slot can
arrive as ``startAt`` or ``start_at``, ``slotType`` or ``slot_type``, an id as
``slotId``, ``id`` or ``bookingId``. Every variant is resolved here, once,
so the aggregator, projection and lifecycle manager only ever see
Booking / AvailabilityBlock / CalendarPreferences.

The weekday convention is also converted here (backend Mon=0 -> UI Sun=0 on
the way in, the reverse in ``preferences_to_payload``) and nowhere else.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.parser import isoparse

from tourdesk.calendar.day_convention import to_api_days, to_ui_days
from tourdesk.schemas.availability_schema import AvailabilityBlock, BlockKind, CalendarPreferences
from tourdesk.schemas.booking_schema import (
    AuditEntry,
    Booking,
    BookingSource,
    BookingStatus,
    ManualBookingDraft,
    ProposedSlot,
    Visitor,
)
from tourdesk.utils import normalize_phone

logger = logging.getLogger(__name__)

_MISSING = object()

SOURCE_ALIASES: dict[str, BookingSource] = {
    "external-voice-agent": BookingSource.EXTERNAL_VOICE_AGENT,
    "external_voice_agent": BookingSource.EXTERNAL_VOICE_AGENT,
    "voice_agent": BookingSource.EXTERNAL_VOICE_AGENT,
    "voice-agent": BookingSource.EXTERNAL_VOICE_AGENT,
    "vapi": BookingSource.EXTERNAL_VOICE_AGENT,
    "dashboard": BookingSource.DASHBOARD,
    "manual": BookingSource.DASHBOARD,
}


def _first(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present with a non-null value."""
    for key in keys:
        value = raw.get(key, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def _zone(label: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(label or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone label %r, assuming UTC", label)
        return ZoneInfo("UTC")


def parse_instant(value: Any, tz_label: Optional[str] = None) -> datetime:
    """Parse an ISO-8601 value; naive values are read in ``tz_label``."""
    parsed = value if isinstance(value, datetime) else isoparse(str(value).strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_zone(tz_label))
    return parsed


def _parse_optional_instant(value: Any, tz_label: Optional[str] = None) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return parse_instant(value, tz_label)


def _parse_status(value: Any) -> BookingStatus:
    return BookingStatus(str(value).strip().lower())


def _parse_source(value: Any) -> BookingSource:
    source = SOURCE_ALIASES.get(str(value).strip().lower())
    if source is None:
        logger.debug("Unrecognized booking source %r, treating as voice agent", value)
        return BookingSource.EXTERNAL_VOICE_AGENT
    return source


def _parse_kind(value: Any) -> BlockKind:
    normalized = str(value).strip().lower().replace("_", "-")
    try:
        return BlockKind(normalized)
    except ValueError:
        logger.debug("Unrecognized slot type %r, treating as unavailable", value)
        return BlockKind.UNAVAILABLE


def _normalize_visitor(raw: dict[str, Any]) -> Visitor:
    nested = raw.get("visitor") or {}
    name = _first(nested, "name") or _first(raw, "visitorName", "visitor_name", default="")
    phone = _first(nested, "phone") or _first(raw, "visitorPhone", "visitor_phone", default="")
    email = _first(nested, "email") or _first(raw, "visitorEmail", "visitor_email")
    return Visitor(name=str(name).strip(), phone=normalize_phone(str(phone)), email=email)


def _normalize_slot(raw: dict[str, Any], tz_label: Optional[str]) -> ProposedSlot:
    return ProposedSlot(
        start_at=parse_instant(_first(raw, "startAt", "start_at"), tz_label),
        end_at=parse_instant(_first(raw, "endAt", "end_at"), tz_label),
    )


def _normalize_audit(raw: dict[str, Any]) -> AuditEntry:
    return AuditEntry(
        action=str(_first(raw, "action", default="unknown")),
        performed_by=str(_first(raw, "performedBy", "performed_by", default="system")),
        performed_at=parse_instant(_first(raw, "performedAt", "performed_at", "timestamp")),
        notes=_first(raw, "notes"),
    )


def normalize_booking(raw: dict[str, Any]) -> Booking:
    """Build a Booking from any backend variant. Raises ValueError when malformed."""
    booking_id = _first(raw, "bookingId", "booking_id", "id")
    if booking_id is None:
        raise ValueError("booking payload has no id")
    tz_label = _first(raw, "timezone", "timeZone", default="UTC")

    return Booking(
        booking_id=int(booking_id),
        property_id=int(_first(raw, "propertyId", "property_id", default=0)),
        property_address=_first(raw, "propertyAddress", "property_address"),
        visitor=_normalize_visitor(raw),
        start_at=parse_instant(_first(raw, "startAt", "start_at"), tz_label),
        end_at=parse_instant(_first(raw, "endAt", "end_at"), tz_label),
        timezone=tz_label,
        status=_parse_status(_first(raw, "status", default=BookingStatus.PENDING.value)),
        created_by=_parse_source(_first(raw, "createdBy", "created_by", "source", default="")),
        approver_id=_first(raw, "approverId", "approver_id", "assignedToUserId"),
        notes=_first(raw, "notes"),
        proposed_slots=[
            _normalize_slot(s, tz_label) for s in _first(raw, "proposedSlots", "proposed_slots", default=[])
        ],
        audit_log=[_normalize_audit(a) for a in _first(raw, "auditLog", "audit_log", default=[])],
        requested_at=_parse_optional_instant(_first(raw, "requestedAt", "requested_at", "createdAt", "created_at")),
        updated_at=_parse_optional_instant(_first(raw, "updatedAt", "updated_at")),
    )


def normalize_block(raw: dict[str, Any]) -> AvailabilityBlock:
    """Build an AvailabilityBlock from any backend slot variant."""
    start_raw = _first(raw, "startAt", "start_at")
    end_raw = _first(raw, "endAt", "end_at")
    if start_raw is None or end_raw is None:
        raise ValueError("slot payload is missing start or end")
    tz_label = _first(raw, "timezone")
    block_id = _first(raw, "slotId", "slot_id", "id", default=f"slot-{start_raw}")

    return AvailabilityBlock(
        block_id=str(block_id),
        start_at=parse_instant(start_raw, tz_label),
        end_at=parse_instant(end_raw, tz_label),
        kind=_parse_kind(_first(raw, "slotType", "slot_type", "kind", default="unavailable")),
        is_full_day=bool(_first(raw, "isFullDay", "is_full_day", default=False)),
        reason=_first(raw, "reason", "notes"),
    )


def _normalize_many(items: Any, normalizer, label: str) -> list:
    """Normalize each item, skipping (and logging) any that cannot be read."""
    if not items:
        return []
    if not isinstance(items, list):
        logger.warning("Expected a list of %ss from backend, got %s", label, type(items).__name__)
        return []
    results = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed %s from backend: %r is not an object", label, item)
            continue
        try:
            results.append(normalizer(item))
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning("Skipping malformed %s from backend: %s", label, e)
    return results


def normalize_bookings(items: Iterable[dict[str, Any]]) -> list[Booking]:
    return _normalize_many(items, normalize_booking, "booking")


def normalize_blocks(items: Iterable[dict[str, Any]]) -> list[AvailabilityBlock]:
    return _normalize_many(items, normalize_block, "availability slot")


def normalize_slots(items: Iterable[dict[str, Any]], tz_label: Optional[str] = None) -> list[ProposedSlot]:
    return _normalize_many(items, lambda raw: _normalize_slot(raw, tz_label), "available slot")


def normalize_preferences(raw: dict[str, Any]) -> CalendarPreferences:
    """Backend preferences -> CalendarPreferences with UI-convention weekdays."""
    body = raw.get("preferences", raw)
    api_days = _first(body, "workingDays", "working_days", default=[0, 1, 2, 3, 4])
    return CalendarPreferences(
        start_time=_first(body, "startTime", "start_time", default="09:00"),
        end_time=_first(body, "endTime", "end_time", default="17:00"),
        timezone=_first(body, "timezone", "timeZone", default="America/New_York"),
        slot_length_minutes=int(_first(body, "slotLength", "slot_length", "slot_length_minutes", default=30)),
        working_days=to_ui_days(int(d) for d in api_days),
    )


def preferences_to_payload(prefs: CalendarPreferences) -> dict[str, Any]:
    """CalendarPreferences -> backend body with backend-convention weekdays."""
    return {
        "start_time": prefs.start_time,
        "end_time": prefs.end_time,
        "timezone": prefs.timezone,
        "slot_length": prefs.slot_length_minutes,
        "working_days": to_api_days(prefs.working_days),
    }


def block_to_payload(block: AvailabilityBlock) -> dict[str, Any]:
    return {
        "start_at": block.start_at.isoformat(),
        "end_at": block.end_at.isoformat(),
        "slot_type": block.kind.value.replace("-", "_"),
        "is_full_day": block.is_full_day,
        "reason": block.reason,
    }


def draft_to_payload(draft: ManualBookingDraft) -> dict[str, Any]:
    return {
        "property_id": draft.property_id,
        "visitor_name": draft.visitor.name,
        "visitor_phone": draft.visitor.phone,
        "visitor_email": draft.visitor.email,
        "start_at": draft.start_at.isoformat(),
        "end_at": draft.end_at.isoformat(),
        "timezone": draft.timezone,
        "notes": draft.notes,
    }


def slots_to_payload(slots: Iterable[ProposedSlot]) -> list[dict[str, str]]:
    return [{"startAt": s.start_at.isoformat(), "endAt": s.end_at.isoformat()} for s in slots]
