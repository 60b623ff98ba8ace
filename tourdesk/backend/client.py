"""
Async REST client for the remote booking service.

Lowest layer: sends requests, maps failures to typed errors, normalizes
payloads at the edge and caches GET pages per user and query parameters.
No business rules live here; transitions are validated by the lifecycle
manager before they ever reach this client.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx

from tourdesk.backend.normalize import (
    block_to_payload,
    draft_to_payload,
    normalize_block,
    normalize_blocks,
    normalize_booking,
    normalize_bookings,
    normalize_preferences,
    normalize_slots,
    preferences_to_payload,
    slots_to_payload,
)
from tourdesk.calendar.cache import ResponseCache, cache_key
from tourdesk.config import settings
from tourdesk.errors import NotAuthenticatedError, TransportFailure
from tourdesk.schemas.availability_schema import AvailabilityBlock, CalendarPreferences
from tourdesk.schemas.booking_schema import (
    Booking,
    BookingStatus,
    ManualBookingDraft,
    ProposedSlot,
)

logger = logging.getLogger(__name__)

ENDPOINT_BOOKINGS = "bookings"
ENDPOINT_PREFERENCES = "calendar-preferences"
ENDPOINT_SLOTS = "unavailable-slots"
ENDPOINT_EVENTS = "calendar-events"

# Pages dropped from the cache whenever the user's data changes
USER_PAGE_ENDPOINTS = [ENDPOINT_BOOKINGS, ENDPOINT_PREFERENCES, ENDPOINT_SLOTS, ENDPOINT_EVENTS]


@dataclass
class CalendarFeed:
    """Combined bookings + availability for a range."""

    bookings: list[Booking] = field(default_factory=list)
    blocks: list[AvailabilityBlock] = field(default_factory=list)


def _range_params(date_from: Optional[datetime], date_to: Optional[datetime]) -> dict[str, str]:
    params: dict[str, str] = {}
    if date_from is not None:
        params["from"] = date_from.isoformat()
    if date_to is not None:
        params["to"] = date_to.isoformat()
    return params


class BookingBackendClient:
    """Booking, availability and preference endpoints of the booking service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        cache: Optional[ResponseCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or settings.backend.base_url).rstrip("/")
        self._token = settings.backend.api_token if token is None else token
        self._timeout = settings.backend.timeout_sec if timeout is None else timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self.cache = cache or ResponseCache()

    async def __aenter__(self) -> "BookingBackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http

    def _headers(self) -> dict[str, str]:
        if not self._token:
            raise NotAuthenticatedError("Not authenticated")
        return {"Authorization": f"Bearer {self._token}"}

    @staticmethod
    def _error_detail(response: httpx.Response, fallback: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict) and body.get("detail"):
            return str(body["detail"])
        return fallback

    async def _request(
        self,
        method: str,
        path: str,
        failure_message: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_body: Any = None,
    ) -> Any:
        headers = self._headers()
        try:
            response = await self._client().request(
                method, path, params=params, json=json_body, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransportFailure(f"{failure_message}: {e}") from e

        if response.status_code == 401:
            raise NotAuthenticatedError("Token expired. Sign in again.")
        if not response.is_success:
            detail = self._error_detail(response, failure_message)
            logger.warning("%s %s -> %d: %s", method, path, response.status_code, detail)
            raise TransportFailure(detail, status_code=response.status_code)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(
                f"{failure_message}: unreadable response", status_code=response.status_code
            ) from e

    async def _cached_get(
        self,
        user_id: int,
        endpoint: str,
        path: str,
        failure_message: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        key = cache_key(user_id, endpoint, params)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        body = await self._request("GET", path, failure_message, params=params)
        self.cache.set(key, body)
        return body

    def invalidate_user(self, user_id: int) -> int:
        """Drop every cached page for the user after a successful mutation."""
        return self.cache.invalidate_user(user_id, USER_PAGE_ENDPOINTS)

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    async def fetch_bookings(
        self,
        user_id: int,
        status: Optional[BookingStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[Booking]:
        params = _range_params(date_from, date_to)
        if status is not None:
            params["status"] = status.value
        body = await self._cached_get(
            user_id, ENDPOINT_BOOKINGS, f"/api/users/{user_id}/bookings",
            "Failed to fetch bookings", params,
        )
        items = body.get("bookings", []) if isinstance(body, dict) else body
        return normalize_bookings(items)

    async def fetch_booking(self, booking_id: int) -> Booking:
        body = await self._request("GET", f"/api/bookings/{booking_id}", "Failed to fetch booking")
        return self._to_booking(body, "Failed to fetch booking")

    async def approve_booking(self, booking_id: int, approver_id: int) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/bookings/{booking_id}/approve", "Failed to approve booking",
            json_body={"approver_id": approver_id},
        )

    async def deny_booking(
        self, booking_id: int, approver_id: int, reason: Optional[str] = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/bookings/{booking_id}/deny", "Failed to deny booking",
            json_body={"approver_id": approver_id, "reason": reason},
        )

    async def reschedule_booking(
        self, booking_id: int, proposed_slots: list[ProposedSlot], reason: Optional[str] = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/bookings/{booking_id}/reschedule", "Failed to reschedule booking",
            json_body={"proposed_slots": slots_to_payload(proposed_slots), "reason": reason},
        )

    async def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/bookings/{booking_id}/cancel", "Failed to cancel booking",
            json_body={"reason": reason},
        )

    async def create_manual_booking(self, draft: ManualBookingDraft) -> Booking:
        body = await self._request(
            "POST", "/api/bookings/manual", "Failed to create booking",
            json_body=draft_to_payload(draft),
        )
        return self._to_booking(body, "Failed to create booking")

    @staticmethod
    def _to_booking(body: Any, failure_message: str) -> Booking:
        raw = body.get("booking", body) if isinstance(body, dict) else body
        try:
            return normalize_booking(raw)
        except (ValueError, TypeError, AttributeError) as e:
            raise TransportFailure(f"{failure_message}: malformed booking in response") from e

    # ------------------------------------------------------------------ #
    # Preferences
    # ------------------------------------------------------------------ #

    async def fetch_preferences(self, user_id: int, user_type: str) -> CalendarPreferences:
        """Live fetch, never served from the page cache."""
        body = await self._request(
            "GET", f"/api/users/{user_id}/calendar-preferences",
            "Failed to fetch calendar preferences", params={"user_type": user_type},
        )
        try:
            return normalize_preferences(body)
        except (ValueError, TypeError, AttributeError) as e:
            raise TransportFailure("Failed to fetch calendar preferences: malformed response") from e

    async def update_preferences(
        self, user_id: int, user_type: str, prefs: CalendarPreferences
    ) -> None:
        await self._request(
            "PUT", f"/api/users/{user_id}/calendar-preferences",
            "Failed to update calendar preferences",
            params={"user_type": user_type}, json_body=preferences_to_payload(prefs),
        )
        self.invalidate_user(user_id)

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    async def fetch_blocks(
        self,
        user_id: int,
        user_type: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[AvailabilityBlock]:
        params = {"user_type": user_type, **_range_params(date_from, date_to)}
        body = await self._cached_get(
            user_id, ENDPOINT_SLOTS, f"/api/users/{user_id}/unavailable-slots",
            "Failed to fetch unavailable slots", params,
        )
        if isinstance(body, dict):
            items = body.get("slots") or body.get("unavailableSlots") or body.get("unavailable_slots") or []
        else:
            items = body
        return normalize_blocks(items)

    async def create_block(
        self, user_id: int, user_type: str, block: AvailabilityBlock
    ) -> AvailabilityBlock:
        body = await self._request(
            "POST", f"/api/users/{user_id}/unavailable-slots", "Failed to block time slot",
            params={"user_type": user_type}, json_body=block_to_payload(block),
        )
        self.invalidate_user(user_id)
        raw = body.get("slot", body) if isinstance(body, dict) else body
        try:
            return normalize_block(raw)
        except (ValueError, TypeError, AttributeError):
            logger.warning("Block created but response was unreadable; keeping submitted block")
            return block

    async def delete_block(self, user_id: int, block_id: str) -> None:
        await self._request(
            "DELETE", f"/api/users/{user_id}/unavailable-slots/{block_id}",
            "Failed to remove block",
        )
        self.invalidate_user(user_id)

    async def fetch_calendar_events(
        self,
        user_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> CalendarFeed:
        params = _range_params(date_from, date_to)
        body = await self._cached_get(
            user_id, ENDPOINT_EVENTS, f"/api/users/{user_id}/calendar-events",
            "Failed to fetch calendar events", params,
        )
        if not isinstance(body, dict):
            raise TransportFailure("Failed to fetch calendar events: unexpected response shape")
        slots = body.get("availabilitySlots") or body.get("availability_slots") or []
        return CalendarFeed(
            bookings=normalize_bookings(body.get("bookings", [])),
            blocks=normalize_blocks(slots),
        )

    async def fetch_property_availability(
        self,
        property_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[ProposedSlot]:
        """Open slots of a property, the candidates for a reschedule proposal.

        Fetched live: the page is shared by every user showing the property.
        """
        body = await self._request(
            "GET", f"/vapi/properties/{property_id}/availability",
            "Failed to fetch availability", params=_range_params(date_from, date_to),
        )
        if isinstance(body, dict):
            items = body.get("availableSlots") or body.get("available_slots") or []
            tz_label = body.get("timezone") or body.get("timeZone")
        else:
            items, tz_label = body, None
        return normalize_slots(items, tz_label)
